"""
Project profile - detect the technology stack of a working directory.

Detection is marker based, in this order:
    package.json dependencies      -> TypeScript, React, Next.js, Express, Jest, ...
    schema.prisma                  -> Prisma ORM plus its datasource provider
    requirements.txt / pyproject   -> Python plus a web framework
    Dockerfile, k8s manifests, .github/workflows
    source patterns (git checkouts only) -> tRPC routers, AI providers, auth

Every technology carries a confidence in [0, 1] and the evidence that produced
it. Unreadable or malformed marker files are skipped; a profile is always
returned for an existing directory.
"""

import json
import logging
import os
import re
from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path

from .models import ProjectProfile, Technology, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILES = 2000
DEFAULT_MAX_FILE_BYTES = 256 * 1024

# Directories never descended into
SKIP_DIRS = {
    ".git",
    ".hg",
    ".venv",
    "venv",
    "node_modules",
    "__pycache__",
    "dist",
    "build",
    ".next",
    ".tox",
}

SOURCE_SUFFIXES = {".py", ".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx"}

DEPENDENCY_FIELDS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)

# (dependency names, category, technology, confidence)
# A name ending in "/" matches every package of that npm scope.
PACKAGE_RULES: list[tuple[tuple[str, ...], str, str, float]] = [
    (("typescript",), "language", "TypeScript", 0.95),
    (("@trpc/",), "backend", "tRPC", 0.95),
    (("@prisma/client", "prisma"), "database", "Prisma", 0.95),
    (("express",), "backend", "Express", 0.90),
    (("next",), "frontend", "Next.js", 0.95),
    (("react",), "frontend", "React", 0.95),
    (("expo", "react-native"), "mobile", "React Native/Expo", 0.95),
    (("jest", "@jest/"), "testing", "Jest", 0.90),
    (("openai", "@anthropic-ai/", "langchain", "@langchain/"), "ai", "LLM Integration", 0.95),
    (("bullmq",), "infrastructure", "BullMQ", 0.95),
]

PRISMA_PROVIDERS = {
    "postgresql": "PostgreSQL",
    "mysql": "MySQL",
    "sqlite": "SQLite",
    "mongodb": "MongoDB",
    "sqlserver": "SQL Server",
    "cockroachdb": "CockroachDB",
}
_PRISMA_PROVIDER = re.compile(r'provider\s*=\s*"(\w+)"')

_PYTHON_WEB_FRAMEWORK = re.compile(r"\b(fastapi|django|flask)\b", re.IGNORECASE)

DOCKER_FILES = ("Dockerfile", "docker-compose.yml", "docker-compose.yaml", "compose.yaml")
KUBERNETES_DIRS = ("k8s", "kubernetes")
_K8S_API_VERSION = re.compile(r"^apiVersion:\s*\S+", re.MULTILINE)
_K8S_KIND = re.compile(r"^kind:\s*[A-Z]\w+", re.MULTILINE)

# (pattern, category, technology, confidence, evidence) for source files
SOURCE_RULES: list[tuple[re.Pattern[str], str, str, float, str]] = [
    (
        re.compile(r"createTRPCRouter|createTRPCContext"),
        "backend",
        "tRPC Router",
        0.90,
        "tRPC router patterns in code",
    ),
    (
        re.compile(r"OpenAI|Anthropic|Claude"),
        "ai",
        "AI Provider Integration",
        0.85,
        "AI provider usage in code",
    ),
    (
        re.compile(r"jwt|passport|auth0"),
        "security",
        "Authentication",
        0.75,
        "Auth patterns in code",
    ),
]


class ProjectAnalysisError(ValueError):
    """Raised when the project path is not a directory."""

    pass


def _read_text(path: Path, max_bytes: int) -> str | None:
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return f.read(max_bytes)
    except OSError as e:
        logger.debug(f"Skipping unreadable file {path}: {e}")
        return None


def _walk_files(root: Path, max_files: int) -> Iterator[Path]:
    """Yield up to max_files regular files under root, skipping vendored trees."""
    seen = 0
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        for filename in sorted(filenames):
            if seen >= max_files:
                return
            seen += 1
            yield Path(dirpath) / filename


def _package_dependencies(package_json: Path, max_bytes: int) -> set[str]:
    text = _read_text(package_json, max_bytes)
    if text is None:
        return set()
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(f"Ignoring malformed {package_json}: {e}")
        return set()
    if not isinstance(data, dict):
        return set()

    names: set[str] = set()
    for field_name in DEPENDENCY_FIELDS:
        section = data.get(field_name)
        if isinstance(section, dict):
            names.update(str(name) for name in section)
    return names


def _matches_dependency(patterns: tuple[str, ...], dependencies: set[str]) -> bool:
    for pattern in patterns:
        if pattern.endswith("/"):
            if any(dep.startswith(pattern) for dep in dependencies):
                return True
        elif pattern in dependencies:
            return True
    return False


class ProjectAnalyzer:
    """Detects technologies in one project directory."""

    def __init__(
        self,
        max_files: int = DEFAULT_MAX_FILES,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize analyzer.

        Args:
            max_files: Upper bound on files visited when walking the project
            max_file_bytes: Bytes read from any single file
            clock: Source of the profile's analyzed_at timestamp
        """
        self.max_files = max_files
        self.max_file_bytes = max_file_bytes
        self.clock = clock

    def analyze(self, project_dir: str | Path) -> ProjectProfile:
        """
        Build the technology profile of a project.

        Raises:
            ProjectAnalysisError: If project_dir is not an existing directory
        """
        root = Path(project_dir).expanduser()
        if not root.is_dir():
            raise ProjectAnalysisError(f"Not a project directory: {root}")
        root = root.resolve()

        found: dict[str, Technology] = {}

        def add(category: str, name: str, confidence: float, evidence: str) -> None:
            if name not in found:
                found[name] = Technology(category, name, confidence, evidence)

        files = list(_walk_files(root, self.max_files))

        self._detect_packages(root, add)
        self._detect_prisma(root, files, add)
        self._detect_python(root, add)
        self._detect_infrastructure(root, files, add)
        if (root / ".git").exists():
            self._detect_source_patterns(files, add)

        profile = ProjectProfile(
            project=root.name,
            path=str(root),
            analyzed_at=self.clock(),
            technologies=list(found.values()),
        )
        logger.info(f"Analyzed {root}: {len(profile.technologies)} technologies")
        return profile

    def _detect_packages(self, root: Path, add: Callable[..., None]) -> None:
        package_json = root / "package.json"
        if not package_json.is_file():
            return
        dependencies = _package_dependencies(package_json, self.max_file_bytes)
        for patterns, category, name, confidence in PACKAGE_RULES:
            if _matches_dependency(patterns, dependencies):
                add(category, name, confidence, "package.json dependencies")

    def _detect_prisma(self, root: Path, files: list[Path], add: Callable[..., None]) -> None:
        schemas = [path for path in files if path.name == "schema.prisma"]
        preferred = root / "prisma" / "schema.prisma"
        if preferred in schemas:
            schemas.remove(preferred)
            schemas.insert(0, preferred)
        if not schemas:
            return

        add("database", "Prisma ORM", 0.95, "schema.prisma file found")
        text = _read_text(schemas[0], self.max_file_bytes) or ""
        match = _PRISMA_PROVIDER.search(text)
        if match and match.group(1) in PRISMA_PROVIDERS:
            add("database", PRISMA_PROVIDERS[match.group(1)], 0.90, "Prisma schema provider")

    def _detect_python(self, root: Path, add: Callable[..., None]) -> None:
        markers = [
            root / name
            for name in ("requirements.txt", "pyproject.toml")
            if (root / name).is_file()
        ]
        if not markers:
            return

        add("language", "Python", 0.90, " or ".join(p.name for p in markers) + " found")
        for marker in markers:
            text = _read_text(marker, self.max_file_bytes) or ""
            if _PYTHON_WEB_FRAMEWORK.search(text):
                add("backend", "Python Web Framework", 0.85, f"{marker.name} dependencies")
                break

    def _detect_infrastructure(
        self, root: Path, files: list[Path], add: Callable[..., None]
    ) -> None:
        docker = [name for name in DOCKER_FILES if (root / name).is_file()]
        if docker:
            add("infrastructure", "Docker", 0.90, f"{docker[0]} found")

        k8s_dirs = [name for name in KUBERNETES_DIRS if (root / name).is_dir()]
        if k8s_dirs:
            add("infrastructure", "Kubernetes", 0.80, f"{k8s_dirs[0]}/ directory found")
        else:
            for path in files:
                if path.suffix not in (".yaml", ".yml") or ".github" in path.parts:
                    continue
                text = _read_text(path, self.max_file_bytes) or ""
                if _K8S_API_VERSION.search(text) and _K8S_KIND.search(text):
                    evidence = f"K8s manifest {path.relative_to(root)}"
                    add("infrastructure", "Kubernetes", 0.80, evidence)
                    break

        if (root / ".github" / "workflows").is_dir():
            add("cicd", "GitHub Actions", 0.95, ".github/workflows directory found")

    def _detect_source_patterns(self, files: list[Path], add: Callable[..., None]) -> None:
        pending = list(SOURCE_RULES)
        for path in files:
            if not pending:
                return
            if path.suffix not in SOURCE_SUFFIXES:
                continue
            text = _read_text(path, self.max_file_bytes)
            if not text:
                continue
            for rule in list(pending):
                pattern, category, name, confidence, evidence = rule
                if pattern.search(text):
                    add(category, name, confidence, evidence)
                    pending.remove(rule)


def analyze_project(project_dir: str | Path, **kwargs) -> ProjectProfile:
    """Convenience wrapper: ProjectAnalyzer(**kwargs).analyze(project_dir)."""
    return ProjectAnalyzer(**kwargs).analyze(project_dir)
