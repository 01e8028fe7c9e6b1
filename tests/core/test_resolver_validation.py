import pytest

from modflow.errors import DependencyNotFoundError, VersionConstraintError
from modflow.registry import ModuleRegistry
from modflow.resolver import DependencyResolver


def test_missing_dependency_of_required_module_is_fatal_with_suggestion():
    reg = ModuleRegistry()
    reg.register({"name": "Auth"})
    reg.register({"name": "Blog", "required": True, "dependencies": ["Auht"]})
    with pytest.raises(DependencyNotFoundError) as ei:
        DependencyResolver().resolve(reg)
    err = ei.value
    assert err.error_type == "dependency-not-found"
    assert err.missing[0].dependency == "Auht"
    assert err.missing[0].suggestion == "Auth"
    assert "did you mean 'Auth'" in str(err)


def test_all_hard_misses_reported_together():
    reg = ModuleRegistry()
    reg.register({"name": "Blog", "required": True, "dependencies": ["X", "Y"]})
    with pytest.raises(DependencyNotFoundError) as ei:
        DependencyResolver().validate(reg)
    assert [m.dependency for m in ei.value.missing] == ["X", "Y"]


def test_missing_dependency_of_optional_module_is_soft():
    reg = ModuleRegistry()
    reg.register({"name": "Blog", "dependencies": ["Comments"]})
    r = DependencyResolver()
    misses = r.validate(reg)
    assert len(misses) == 1
    assert misses[0].reason == "missing" and not misses[0].hard
    assert r.resolve(reg) == ["Blog"]


def test_optional_dependency_of_required_module_is_soft():
    reg = ModuleRegistry()
    reg.register(
        {
            "name": "Core",
            "required": True,
            "dependencies": [{"name": "Telemetry", "optional": True}],
        }
    )
    misses = DependencyResolver().validate(reg)
    assert misses[0].optional and not misses[0].hard


def test_disabled_dependency_reason_and_no_suggestion():
    reg = ModuleRegistry()
    reg.register({"name": "Auth", "enabled": False})
    reg.register({"name": "Blog", "dependencies": ["Auth"]})
    (miss,) = DependencyResolver().validate(reg)
    assert miss.reason == "disabled"
    assert miss.suggestion is None
    assert "which is disabled" in miss.describe()


def test_disabled_module_dependencies_are_not_validated():
    reg = ModuleRegistry()
    reg.register({"name": "Old", "required": True, "enabled": False, "dependencies": ["Gone"]})
    assert DependencyResolver().validate(reg) == []


def test_version_violations_are_aggregated():
    reg = ModuleRegistry()
    reg.register({"name": "Core", "version": "1.4.0"})
    reg.register({"name": "Auth", "version": "1.0.0"})
    reg.register(
        {"name": "Blog", "dependencies": {"Core": "^2.0", "Auth": ">=1.0.0 <2.0.0"}}
    )
    reg.register({"name": "Shop", "dependencies": ["Auth:^3.0"]})
    r = DependencyResolver()
    assert len(r.check_versions(reg)) == 2
    with pytest.raises(VersionConstraintError) as ei:
        r.resolve(reg)
    err = ei.value
    assert [(v.module, v.dependency) for v in err.violations] == [
        ("Blog", "Core"),
        ("Shop", "Auth"),
    ]
    assert (err.module, err.dependency, err.actual) == ("Blog", "Core", "1.4.0")
    assert "Shop" in str(err)


def test_satisfied_constraints_resolve():
    reg = ModuleRegistry()
    reg.register({"name": "Core", "version": "1.4.0"})
    reg.register({"name": "Blog", "dependencies": ["Core:~1.4"]})
    assert DependencyResolver().resolve(reg) == ["Core", "Blog"]


def test_dependency_tree_and_dependents():
    reg = ModuleRegistry()
    reg.register({"name": "Core"})
    reg.register({"name": "Auth", "dependencies": ["Core"]})
    reg.register({"name": "Blog", "dependencies": ["Auth", "Core"]})
    r = DependencyResolver()
    tree = r.dependency_tree(reg)
    assert tree["Core"] == {"dependencies": [], "dependents": ["Auth", "Blog"], "depth": 0}
    assert tree["Blog"]["depth"] == 2
    assert r.dependents(reg, "Auth") == ["Blog"]
