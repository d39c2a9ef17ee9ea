"""
Import-boundary enforcement.

1. Domain purity     -- validation_kernel/domain/** imports nothing outside
                        the standard library and the domain package at runtime.
2. Engine purity     -- validation_engines/** may not import the ORM, DB,
                        kernel services/models/selectors, config or services.
3. Engine no-impure  -- engines never read the wall clock or environment.
4. Kernel direction  -- validation_kernel/** never imports validation_config
                        or validation_services.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted(Path(p) for p in glob.glob(f"{ROOT / package}/**/*.py", recursive=True))


def _is_type_checking_block(node: ast.AST) -> bool:
    return isinstance(node, ast.If) and (
        (isinstance(node.test, ast.Name) and node.test.id == "TYPE_CHECKING")
        or (isinstance(node.test, ast.Attribute) and node.test.attr == "TYPE_CHECKING")
    )


def _runtime_imports(path: Path) -> list[tuple[int, str]]:
    """(line, module) for every import not guarded by ``if TYPE_CHECKING``."""
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []

    def visit(node: ast.AST) -> None:
        if _is_type_checking_block(node):
            return
        if isinstance(node, ast.Import):
            results.extend((node.lineno, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
        for child in ast.iter_child_nodes(node):
            visit(child)

    visit(tree)
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(package):
        for lineno, module in _runtime_imports(path):
            if _matches_any(module, forbidden):
                found.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestDomainPurity:

    ALLOWED_PREFIXES = (
        "__future__",
        "abc",
        "collections",
        "dataclasses",
        "datetime",
        "decimal",
        "enum",
        "typing",
        "uuid",
        "validation_kernel.domain",
    )

    def test_domain_imports_only_stdlib_and_itself(self):
        violations = [
            f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'"
            for path in _python_files("validation_kernel/domain")
            for lineno, module in _runtime_imports(path)
            if not _matches_any(module, self.ALLOWED_PREFIXES)
        ]
        assert not violations, "Domain purity violation:\n" + "\n".join(violations)


class TestEnginePurity:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "httpx",
        "validation_kernel.db",
        "validation_kernel.models",
        "validation_kernel.services",
        "validation_kernel.selectors",
        "validation_config",
        "validation_services",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("validation_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, "Engine purity violation:\n" + "\n".join(violations)

    @pytest.mark.parametrize("call", [
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "os.environ",
        "os.getenv",
        "random.random",
    ])
    def test_no_wall_clock_or_environment(self, call):
        receiver, attr = call.split(".")
        hits = []
        for path in _python_files("validation_engines"):
            tree = ast.parse(path.read_text(), filename=str(path))
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Attribute)
                    and node.attr == attr
                    and isinstance(node.value, ast.Name)
                    and node.value.id == receiver
                ):
                    hits.append(f"  {path.relative_to(ROOT)}:{node.lineno}")
        assert not hits, f"{call} used in engines:\n" + "\n".join(hits)


class TestKernelDirection:

    def test_kernel_never_imports_outer_layers(self):
        violations = _violations("validation_kernel", ("validation_config", "validation_services"))
        assert not violations, "Kernel depends on an outer layer:\n" + "\n".join(violations)

    def test_config_never_imports_services(self):
        violations = _violations("validation_config", ("validation_services",))
        assert not violations, "Config depends on services:\n" + "\n".join(violations)
