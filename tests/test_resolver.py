import asyncio

import pytest

from mup.exceptions import ConflictError, IncompatibleLoaderError, NotFoundError
from mup.lockfile import LockfileStore
from mup.models import (
    LATEST,
    DependencyInfo,
    Loader,
    Origin,
    RepositoryKind,
    Requirement,
    ServerProfile,
)
from mup.services import Resolver


def _req(project, version="latest", **kwargs):
    return Requirement(RepositoryKind.MODRINTH, project, version, **kwargs)


def _resolve(router, profile, requirements, **kwargs):
    return asyncio.run(Resolver(router).resolve(profile, requirements, **kwargs))


def test_pinned_version_resolves_to_exact_id(fake, router, profile):
    fake.publish("uXXizFIs", "IPM0JlHd", day=1, name="ferrite-core")
    fake.publish("uXXizFIs", "newer", day=5, name="ferrite-core")

    lockfile = _resolve(router, profile, [_req("ferrite-core", "IPM0JlHd")])

    assert len(lockfile) == 1
    artifact = lockfile.find("ferrite-core")
    assert artifact.version_id == "IPM0JlHd"
    assert artifact.origin is Origin.DIRECT
    assert artifact.install_path == "mods/ferrite-core-IPM0JlHd.jar"
    assert artifact.source_requirement == "modrinth:ferrite-core@IPM0JlHd"


def test_pinned_version_missing_is_not_found(fake, router, profile):
    fake.publish("lithium", "a", day=1)

    with pytest.raises(NotFoundError) as excinfo:
        _resolve(router, profile, [_req("lithium", "does-not-exist")])
    assert excinfo.value.context["requirement"] == "modrinth:lithium@does-not-exist"


def test_pinned_incompatible_version_is_never_substituted(fake, router, profile):
    fake.publish("lithium", "old", day=1, game_versions=["1.19.4"])
    fake.publish("lithium", "new", day=2)

    with pytest.raises(IncompatibleLoaderError) as excinfo:
        _resolve(router, profile, [_req("lithium", "old")])
    assert isinstance(excinfo.value, NotFoundError)


def test_latest_selects_newest_compatible(fake, router, profile):
    fake.publish("sodium", "v1", day=1)
    fake.publish("sodium", "v2", day=2)
    fake.publish("sodium", "v3-forge", day=3, loaders=[Loader.FORGE])
    fake.publish("sodium", "v4-1.21", day=4, game_versions=["1.21"])

    lockfile = _resolve(router, profile, [_req("sodium")])

    assert lockfile.find("sodium").version_id == "v2"


def test_latest_tie_broken_by_greatest_version_id(fake, router, profile):
    fake.publish("sodium", "aaa", day=1)
    fake.publish("sodium", "zzz", day=1)
    fake.publish("sodium", "mmm", day=1)

    lockfile = _resolve(router, profile, [_req("sodium")])

    assert lockfile.find("sodium").version_id == "zzz"


def test_no_compatible_candidate_escalates_to_not_found(fake, router, profile):
    fake.publish("forgeonly", "v1", loaders=[Loader.FORGE])

    with pytest.raises(NotFoundError) as excinfo:
        _resolve(router, profile, [_req("forgeonly")])
    assert isinstance(excinfo.value, IncompatibleLoaderError)


def test_unknown_project_is_not_found(router, profile):
    with pytest.raises(NotFoundError):
        _resolve(router, profile, [_req("ghost")])


def test_transitive_dependencies_are_resolved(fake, router, profile):
    fake.publish("P7dR8mSH", "api-1", day=1, name="fabric-api")
    fake.publish("lithium", "l1", day=1, deps=["P7dR8mSH"])

    lockfile = _resolve(router, profile, [_req("lithium")])

    assert [a.project_id for a in lockfile] == ["P7dR8mSH", "lithium"]
    dep = lockfile.get(RepositoryKind.MODRINTH, "P7dR8mSH")
    assert dep.origin is Origin.TRANSITIVE
    assert "required by lithium" in dep.source_requirement
    assert lockfile.find("lithium").dependency_ids == ("P7dR8mSH",)


def test_optional_dependencies_are_skipped(fake, router, profile):
    fake.publish("modmenu", "m1", day=1)
    fake.publish("sodium", "s1", day=1, deps=[DependencyInfo("modmenu", required=False)])

    lockfile = _resolve(router, profile, [_req("sodium")])

    assert [a.project_id for a in lockfile] == ["sodium"]


def test_no_deps_requirement_skips_dependencies(fake, router, profile):
    fake.publish("P7dR8mSH", "api-1", day=1, name="fabric-api")
    fake.publish("lithium", "l1", day=1, deps=["P7dR8mSH"])

    lockfile = _resolve(router, profile, [_req("lithium", dependencies=False)])

    assert [a.project_id for a in lockfile] == ["lithium"]
    assert lockfile.find("lithium").dependencies == ()


def test_shared_dependency_is_resolved_once(fake, router, profile):
    fake.publish("P7dR8mSH", "api-1", day=1, name="fabric-api")
    fake.publish("lithium", "l1", day=1, deps=["P7dR8mSH"])
    fake.publish("sodium", "s1", day=1, deps=["P7dR8mSH"])

    lockfile = _resolve(router, profile, [_req("lithium"), _req("sodium")])

    assert len(lockfile) == 3
    assert fake.list_calls.count("P7dR8mSH") == 1


def test_direct_slug_and_dependency_id_share_one_entry(fake, router, profile):
    fake.publish("P7dR8mSH", "api-1", day=1, name="fabric-api")
    fake.publish("lithium", "l1", day=1, deps=["P7dR8mSH"])

    lockfile = _resolve(router, profile, [_req("fabric-api"), _req("lithium")])

    assert len(lockfile) == 2
    api = lockfile.find("fabric-api")
    assert api.origin is Origin.DIRECT
    assert lockfile.find("lithium").dependency_ids == ("P7dR8mSH",)


def test_latest_dependency_reuses_pinned_selection(fake, router, profile):
    fake.publish("P7dR8mSH", "api-old", day=1, name="fabric-api")
    fake.publish("P7dR8mSH", "api-new", day=2, name="fabric-api")
    fake.publish("lithium", "l1", day=1, deps=["P7dR8mSH"])

    lockfile = _resolve(router, profile, [_req("fabric-api", "api-old"), _req("lithium")])

    assert lockfile.find("fabric-api").version_id == "api-old"


def test_conflicting_pins_name_both_requirements(fake, router, profile):
    fake.publish("P7dR8mSH", "api-1", day=1, name="fabric-api")
    fake.publish("P7dR8mSH", "api-2", day=2, name="fabric-api")
    fake.publish("lithium", "l1", day=1, deps=[DependencyInfo("P7dR8mSH", version_id="api-1")])

    with pytest.raises(ConflictError) as excinfo:
        _resolve(router, profile, [_req("fabric-api", "api-2"), _req("lithium")])

    (conflict,) = excinfo.value.conflicts
    assert conflict["type"] == "version"
    assert conflict["selected"] == "api-2"
    assert conflict["requested"] == "api-1"
    assert conflict["requirements"][0] == "modrinth:fabric-api@api-2"
    assert "required by lithium" in conflict["requirements"][1]


def test_every_conflict_is_reported(fake, router, profile):
    for project in ("a", "b"):
        fake.publish(project, f"{project}-1", day=1)
        fake.publish(project, f"{project}-2", day=2)
    fake.publish(
        "pack",
        "p1",
        deps=[DependencyInfo("a", version_id="a-1"), DependencyInfo("b", version_id="b-1")],
    )

    with pytest.raises(ConflictError) as excinfo:
        _resolve(router, profile, [_req("a", "a-2"), _req("b", "b-2"), _req("pack")])

    assert sorted(c["project"] for c in excinfo.value.conflicts) == ["a", "b"]


def test_dependency_cycle_is_rejected(fake, router, profile):
    fake.publish("a", "a1", deps=["b"])
    fake.publish("b", "b1", deps=["c"])
    fake.publish("c", "c1", deps=["a"])

    with pytest.raises(ConflictError) as excinfo:
        _resolve(router, profile, [_req("a")])

    (conflict,) = excinfo.value.conflicts
    assert conflict["type"] == "cycle"
    assert conflict["path"] == ["c", "a", "b", "c"]


def test_self_dependency_is_a_cycle(fake, router, profile):
    fake.publish("a", "a1", deps=["a"])

    with pytest.raises(ConflictError):
        _resolve(router, profile, [_req("a")])


def test_same_filename_from_two_projects_conflicts(fake, router, profile):
    fake.publish("a", "1", filename="shared.jar")
    fake.publish("b", "1", filename="shared.jar")

    with pytest.raises(ConflictError):
        _resolve(router, profile, [_req("a"), _req("b")])


def test_resolution_is_deterministic(fake, router, profile):
    fake.publish("P7dR8mSH", "api-1", day=1, name="fabric-api")
    fake.publish("lithium", "l1", day=1, deps=["P7dR8mSH"])
    fake.publish("sodium", "s1", day=2, deps=["P7dR8mSH"])
    requirements = [_req("sodium"), _req("lithium")]

    first = LockfileStore.dumps(_resolve(router, profile, requirements))
    second = LockfileStore.dumps(_resolve(router, profile, list(reversed(requirements))))

    assert first == second


def test_result_independent_of_response_order(fake, router, profile):
    fake.publish("P7dR8mSH", "api-1", day=1, name="fabric-api")
    fake.publish("P7dR8mSH", "api-2", day=2, name="fabric-api")
    fake.publish("lithium", "l1", deps=[DependencyInfo("P7dR8mSH", version_id="api-1")])
    fake.publish("sodium", "s1", deps=["P7dR8mSH"])
    requirements = [_req("lithium"), _req("sodium")]

    fake.delays = {"lithium": 0.02}
    slow = _resolve(router, profile, requirements)
    fake.delays = {"sodium": 0.02}
    fast = _resolve(router, profile, requirements)

    assert slow.artifacts == fast.artifacts
    assert slow.find("fabric-api").version_id == "api-1"


def test_previous_lock_is_preferred(fake, router, profile):
    fake.publish("sodium", "s1", day=1)
    previous = _resolve(router, profile, [_req("sodium")])
    fake.publish("sodium", "s2", day=2)

    kept = _resolve(router, profile, [_req("sodium")], previous=previous)
    updated = _resolve(router, profile, [_req("sodium")], previous=previous, unlock=["sodium"])

    assert kept.find("sodium").version_id == "s1"
    assert kept.generation == previous.generation
    assert updated.find("sodium").version_id == "s2"
    assert updated.generation == previous.generation + 1


def test_unlock_all_ignores_previous_lock(fake, router, profile):
    fake.publish("sodium", "s1", day=1)
    fake.publish("lithium", "l1", day=1)
    previous = _resolve(router, profile, [_req("sodium"), _req("lithium")])
    fake.publish("sodium", "s2", day=2)
    fake.publish("lithium", "l2", day=2)

    lockfile = _resolve(
        router, profile, [_req("sodium"), _req("lithium")], previous=previous, unlock_all=True
    )

    assert {a.version_id for a in lockfile} == {"s2", "l2"}


def test_profile_change_ignores_previous_lock(fake, router, profile):
    fake.publish("sodium", "s1", day=1, game_versions=["1.20.1", "1.20.4"])
    previous = _resolve(router, profile, [_req("sodium")])
    fake.publish("sodium", "s2", day=2, game_versions=["1.20.4"])

    lockfile = _resolve(
        router, ServerProfile(Loader.FABRIC, "1.20.4"), [_req("sodium")], previous=previous
    )

    assert lockfile.find("sodium").version_id == "s2"
    assert lockfile.profile.minecraft_version == "1.20.4"


def test_profile_change_still_advances_generation(fake, router, profile):
    fake.publish("sodium", "s1", day=1, game_versions=["1.20.1", "1.20.4"])
    lockfile = _resolve(router, profile, [_req("sodium")])
    for day in (2, 3, 4):
        fake.publish("sodium", f"s{day}", day=day, game_versions=["1.20.1", "1.20.4"])
        lockfile = _resolve(router, profile, [_req("sodium")], previous=lockfile, unlock_all=True)
    assert lockfile.generation == 4

    moved = _resolve(
        router, ServerProfile(Loader.FABRIC, "1.20.4"), [_req("sodium")], previous=lockfile
    )

    assert moved.generation == 5


def test_dependency_edges_keep_their_constraint(fake, router, profile):
    fake.publish("P7dR8mSH", "api-1", day=1, name="fabric-api")
    fake.publish("P7dR8mSH", "api-2", day=2, name="fabric-api")
    fake.publish("cloth", "c1")
    fake.publish(
        "lithium", "l1", deps=[DependencyInfo("P7dR8mSH", version_id="api-1"), "cloth"]
    )

    lockfile = _resolve(router, profile, [_req("lithium")])

    assert lockfile.find("lithium").dependencies == (("P7dR8mSH", "api-1"), ("cloth", LATEST))
    assert {(e.target, e.constraint) for e in lockfile.edges()} == {
        ("P7dR8mSH", "api-1"),
        ("cloth", LATEST),
    }


def test_paper_artifacts_install_into_plugins(fake, router):
    fake.publish("luckperms", "lp1", loaders=[Loader.PAPER])

    lockfile = _resolve(router, ServerProfile(Loader.PAPER, "1.20.1"), [_req("luckperms")])

    assert lockfile.find("luckperms").install_path.startswith("plugins/")
