"""
Tool Registry Tests

Tests for registry validation, placeholder substitution and
probe-then-select fallback resolution.
"""

import sys
import tempfile
from pathlib import Path

from deebo.config.loader import ToolFallbackConfig, ToolSpecConfig
from deebo.memory import get_project_id
from deebo.tools.registry import ToolConfigurationError, ToolRegistry


def make_tools(**overrides) -> dict:
    tools = {
        "git-mcp": ToolSpecConfig(
            command="{uvxPath}",
            args=["mcp-server-git", "--repository", "{repoPath}"],
            fallback=ToolFallbackConfig(
                command="{pythonPath}",
                args=["-m", "mcp_server_git", "--repository", "{repoPath}"],
            ),
        ),
        "desktop-commander": ToolSpecConfig(
            command="{npxPath}",
            args=["-y", "@wonderwhy-er/desktop-commander"],
            env={"MEMORY_DIR": "{memoryPath}"},
            aliases=["filesystem-mcp"],
        ),
    }
    tools.update(overrides)
    return tools


def fake_which(available: set):
    return lambda name: f"/usr/bin/{name}" if name in available else None


def test_registry_validation():
    """Test that invalid registries are rejected at construction."""
    print("=" * 60)
    print("TEST 1: Registry validation")
    print("=" * 60)

    tools = make_tools()
    del tools["desktop-commander"]
    try:
        ToolRegistry.from_config(tools)
    except ToolConfigurationError as e:
        print(f"\nMissing required tool rejected: {e}")
    else:
        raise AssertionError("Registry without desktop-commander should be rejected")

    try:
        ToolRegistry.from_config(make_tools(extra=ToolSpecConfig(command="{dockerPath}")))
    except ToolConfigurationError as e:
        print(f"Unknown placeholder rejected: {e}")
    else:
        raise AssertionError("Unknown placeholder should be rejected")

    try:
        ToolRegistry.from_config(make_tools(extra=ToolSpecConfig(command="  ")))
    except ToolConfigurationError as e:
        print(f"Empty command rejected: {e}")
    else:
        raise AssertionError("Empty command should be rejected")

    print("\n[PASS] Invalid registries rejected")


def test_aliases_and_unknown_tools():
    """Test alias mapping and rejection of unregistered names."""
    print("\n" + "=" * 60)
    print("TEST 2: Aliases and unknown tools")
    print("=" * 60)

    registry = ToolRegistry.from_config(make_tools(), which=fake_which(set()))

    assert registry.canonical_name("git-mcp") == "git-mcp"
    assert registry.canonical_name("filesystem-mcp") == "desktop-commander"
    assert registry.canonical_name("shell-mcp") is None

    try:
        registry.get("shell-mcp")
    except ToolConfigurationError as e:
        print(f"\nUnknown tool rejected: {e}")
    else:
        raise AssertionError("Unknown tool should be rejected")
    print("[PASS] Aliases resolve to registered tools")


def test_resolve_primary():
    """Test placeholder substitution when the primary launcher exists."""
    print("\n" + "=" * 60)
    print("TEST 3: Resolve primary launch configuration")
    print("=" * 60)

    registry = ToolRegistry.from_config(
        make_tools(),
        executables={"npxPath": "npx", "uvxPath": "uvx"},
        which=fake_which({"npx", "uvx"}),
    )

    with tempfile.TemporaryDirectory() as tmp:
        memory_root = Path(tmp) / "memory-bank"
        repo = "/work/app"

        git = registry.resolve("git-mcp", repo, memory_root)
        print(f"\ngit-mcp: {git.command} {git.args}")
        assert git.command == "uvx"
        assert git.args == ["mcp-server-git", "--repository", repo]
        assert git.used_fallback is False

        fs = registry.resolve("filesystem-mcp", repo, memory_root)
        print(f"desktop-commander: {fs.command} {fs.args} env={fs.env}")
        assert fs.name == "desktop-commander"
        assert fs.env["MEMORY_DIR"] == str(memory_root / get_project_id(repo))

    print("\n[PASS] Primary configuration resolved")


def test_resolve_fallback():
    """Test that a missing primary launcher selects the fallback."""
    print("\n" + "=" * 60)
    print("TEST 4: Probe-then-select fallback")
    print("=" * 60)

    registry = ToolRegistry.from_config(
        make_tools(),
        executables={"npxPath": "npx", "uvxPath": "uvx"},
        which=fake_which(set()),
    )

    git = registry.resolve("git-mcp", "/work/app", Path("/tmp/memory-bank"))
    print(f"\ngit-mcp: {git.command} {git.args} (fallback={git.used_fallback})")
    assert git.command == sys.executable
    assert git.args == ["-m", "mcp_server_git", "--repository", "/work/app"]
    assert git.used_fallback is True

    try:
        registry.resolve("desktop-commander", "/work/app", Path("/tmp/memory-bank"))
    except ToolConfigurationError as e:
        print(f"No runnable variant: {e}")
    else:
        raise AssertionError("desktop-commander has no fallback and no npx")

    print("\n[PASS] Fallback selected explicitly")


def test_executable_resolution_order():
    """Test override > environment > PATH for launcher executables."""
    print("\n" + "=" * 60)
    print("TEST 5: Executable resolution order")
    print("=" * 60)

    import os
    from deebo.tools.registry import resolve_executables

    saved = os.environ.get("DEEBO_NPX_PATH")
    os.environ["DEEBO_NPX_PATH"] = "/opt/node/bin/npx"
    try:
        resolved = resolve_executables({"uvxPath": "/custom/uvx"}, which=fake_which({"npx", "uvx"}))
    finally:
        if saved is None:
            os.environ.pop("DEEBO_NPX_PATH", None)
        else:
            os.environ["DEEBO_NPX_PATH"] = saved

    print(f"\nResolved: {resolved}")
    assert resolved["uvxPath"] == "/custom/uvx"
    assert resolved["npxPath"] == "/opt/node/bin/npx"
    assert resolved["pythonPath"] == sys.executable
    print("[PASS] Resolution order respected")


def main():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("TOOL REGISTRY TESTS")
    print("=" * 60)

    test_registry_validation()
    test_aliases_and_unknown_tools()
    test_resolve_primary()
    test_resolve_fallback()
    test_executable_resolution_order()

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
