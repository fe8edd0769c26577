"""
Import-boundary enforcement across the four packages.

1. Engine purity         -- fulfillment_engines/** may not import DB, ORM,
                            models, services, or config layers.
2. Engine no-impure      -- fulfillment_engines/** may not read the wall
                            clock or the environment.
3. Kernel direction      -- fulfillment_kernel/** never imports
                            fulfillment_services or fulfillment_config.
4. Domain purity         -- fulfillment_kernel/domain/** has no ORM imports.
5. Unit of work          -- kernel services flush and never commit; only
                            session owners may call commit().

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path


def _python_files(root: str) -> list[str]:
    """Return all .py files under *root*, sorted for deterministic order."""
    return sorted(glob.glob(f"{root}/**/*.py", recursive=True))


def _parse(filepath: str) -> ast.AST | None:
    try:
        return ast.parse(Path(filepath).read_text(), filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return None


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = _parse(filepath)
    if tree is None:
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _extract_attribute_refs(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute refs."""
    tree = _parse(filepath)
    if tree is None:
        return []
    return [
        (node.lineno, f"{node.value.id}.{node.attr}")
        for node in ast.walk(tree)
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name)
    ]


def _extract_method_calls(filepath: str, method: str) -> list[int]:
    """Line numbers of every ``<anything>.<method>(...)`` call."""
    tree = _parse(filepath)
    if tree is None:
        return []
    return [
        node.lineno
        for node in ast.walk(tree)
        if isinstance(node, ast.Call)
        and isinstance(node.func, ast.Attribute)
        and node.func.attr == method
    ]


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _scan(root: str, forbidden: tuple[str, ...]) -> list[str]:
    return [
        f"  {filepath}:{lineno} imports '{module}'"
        for filepath in _python_files(root)
        for lineno, module in _extract_imports(filepath)
        if _matches_any(module, forbidden)
    ]


class TestEnginePurity:
    """fulfillment_engines/** are pure functions over domain values."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "fulfillment_kernel.models",
        "fulfillment_kernel.db",
        "fulfillment_kernel.services",
        "fulfillment_kernel.selectors",
        "fulfillment_services",
        "fulfillment_config",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _scan("fulfillment_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Engine purity violation: fulfillment_engines/** must not import "
            "DB drivers, ORM, kernel models/db/services, or config:\n"
            + "\n".join(violations)
        )


class TestEngineNoImpureFunctions:
    """Engines may not read the wall clock or the environment.

    ``time.perf_counter`` and ``time.monotonic`` are observational only
    and stay allowed for the tracer.
    """

    FORBIDDEN_REFS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
    })

    def test_no_wall_clock_or_environment(self):
        violations = [
            f"  {filepath}:{lineno} uses {ref}"
            for filepath in _python_files("fulfillment_engines")
            for lineno, ref in _extract_attribute_refs(filepath)
            if ref in self.FORBIDDEN_REFS
        ]
        assert not violations, "\n".join(violations)


class TestKernelDirection:

    def test_kernel_never_imports_upward(self):
        violations = _scan(
            "fulfillment_kernel", ("fulfillment_services", "fulfillment_config"),
        )
        assert not violations, (
            "fulfillment_kernel/** must not depend on services or config:\n"
            + "\n".join(violations)
        )

    def test_config_never_imports_services(self):
        violations = _scan("fulfillment_config", ("fulfillment_services",))
        assert not violations, "\n".join(violations)


class TestDomainPurity:

    def test_domain_has_no_orm_or_db(self):
        violations = _scan(
            "fulfillment_kernel/domain",
            (
                "sqlalchemy",
                "fulfillment_kernel.models",
                "fulfillment_kernel.db",
                "fulfillment_kernel.services",
            ),
        )
        assert not violations, "\n".join(violations)


class TestUnitOfWork:
    """Transactions commit only through session_scope; services flush."""

    SESSION_OWNERS = frozenset({"fulfillment_kernel/db/engine.py"})

    def test_no_commit_outside_session_owners(self):
        violations = [
            f"  {filepath}:{lineno} calls commit()"
            for root in ("fulfillment_kernel", "fulfillment_engines", "fulfillment_config")
            for filepath in _python_files(root)
            if filepath not in self.SESSION_OWNERS
            for lineno in _extract_method_calls(filepath, "commit")
        ]
        assert not violations, "\n".join(violations)
