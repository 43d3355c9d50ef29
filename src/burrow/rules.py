"""Curated name sets that steer traversal.

The sets are bundled into an immutable ScanRules value built once at startup
and handed to every scanner, so callers (and tests) can substitute their own.
"""

import fnmatch
import os
from dataclasses import dataclass, field

# Directories whose size is charged but whose contents are never listed
FOLD_DIRECTORIES = frozenset(
    {
        # VCS
        ".git",
        ".svn",
        ".hg",
        # JavaScript / Node
        "node_modules",
        ".npm",
        "_npx",
        "_cacache",
        "_logs",
        "_locks",
        "_quick",
        "_libvips",
        "_prebuilds",
        "_update-notifier-last-checked",
        ".yarn",
        ".pnpm-store",
        ".next",
        ".nuxt",
        "bower_components",
        ".vite",
        ".turbo",
        ".parcel-cache",
        ".nx",
        ".rush",
        "tnpm",
        ".tnpm",
        ".bun",
        ".deno",
        # Python
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".ruff_cache",
        "venv",
        ".venv",
        "virtualenv",
        ".tox",
        "site-packages",
        ".eggs",
        "*.egg-info",
        ".pyenv",
        ".poetry",
        ".pip",
        ".pipx",
        # Ruby / Go / PHP / JVM / Rust
        "vendor",
        ".bundle",
        "gems",
        ".rbenv",
        "target",
        ".gradle",
        ".m2",
        ".ivy2",
        "out",
        "pkg",
        "composer.phar",
        ".composer",
        ".cargo",
        # Build outputs
        "build",
        "dist",
        ".output",
        "coverage",
        ".coverage",
        # IDE
        ".idea",
        ".vscode",
        ".vs",
        ".fleet",
        # Caches
        ".cache",
        "__MACOSX",
        ".DS_Store",
        ".Trash",
        "Caches",
        ".Spotlight-V100",
        ".fseventsd",
        ".DocumentRevisions-V100",
        ".TemporaryItems",
        "$RECYCLE.BIN",
        ".temp",
        ".tmp",
        "_temp",
        "_tmp",
        ".Homebrew",
        ".rustup",
        ".sdkman",
        ".nvm",
        # macOS
        "Application Scripts",
        "Saved Application State",
        "Mobile Documents",
        # Containers
        ".docker",
        ".containerd",
        # Mobile development
        "Pods",
        "DerivedData",
        ".build",
        "xcuserdata",
        "Carthage",
        ".dart_tool",
        # Web frameworks
        ".angular",
        ".svelte-kit",
        ".astro",
        ".solid",
        # Databases
        ".mysql",
        ".postgres",
        "mongodb",
        # Other
        ".terraform",
        ".vagrant",
        "tmp",
        "temp",
    }
)

# Never listed anywhere
DEFAULT_SKIP_DIRECTORIES = frozenset({"nfs", "PHD", "Permissions"})

# Skipped only when listing the filesystem root
SYSTEM_SKIP_DIRECTORIES = frozenset(
    {
        "dev",
        "tmp",
        "private",
        "cores",
        "net",
        "home",
        "System",
        "sbin",
        "bin",
        "etc",
        "var",
        "proc",
        "sys",
        "run",
        "Volumes",
        "Network",
        ".vol",
        ".Spotlight-V100",
        ".fseventsd",
        ".DocumentRevisions-V100",
        ".TemporaryItems",
        ".MobileBackups",
    }
)

# Source and text files are never reported as large-file cleanup targets
SKIP_EXTENSIONS = frozenset(
    {
        ".go", ".js", ".ts", ".tsx", ".jsx", ".json", ".md", ".txt", ".yml",
        ".yaml", ".xml", ".html", ".css", ".scss", ".sass", ".less", ".py",
        ".rb", ".java", ".kt", ".rs", ".swift", ".m", ".mm", ".c", ".cpp",
        ".h", ".hpp", ".cs", ".sql", ".db", ".lock", ".gradle", ".mjs",
        ".cjs", ".coffee", ".dart", ".svelte", ".vue", ".nim", ".hx",
    }
)

_NPM_CACHE_MARKERS = (f"{os.sep}.npm{os.sep}", f"{os.sep}.tnpm{os.sep}")


@dataclass(frozen=True)
class ScanRules:
    """Immutable lookup sets injected into the scanners."""

    fold_dirs: frozenset[str] = FOLD_DIRECTORIES
    skip_dirs: frozenset[str] = DEFAULT_SKIP_DIRECTORIES
    system_skip_dirs: frozenset[str] = SYSTEM_SKIP_DIRECTORIES
    skip_extensions: frozenset[str] = SKIP_EXTENSIONS
    _fold_patterns: tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        patterns = tuple(name for name in self.fold_dirs if "*" in name)
        object.__setattr__(self, "_fold_patterns", patterns)

    def should_fold(self, name: str, path: str = "") -> bool:
        """Whether a directory is sized but never descended into."""
        if name in self.fold_dirs:
            return True
        if any(fnmatch.fnmatchcase(name, pattern) for pattern in self._fold_patterns):
            return True

        # npm cache shards: ~/.npm/_cacache/..., ~/.npm/a/...
        if path and any(marker in path for marker in _NPM_CACHE_MARKERS):
            parent = os.path.basename(os.path.dirname(path))
            if parent in (".npm", ".tnpm") or parent.startswith("_"):
                return True
            if len(name) == 1:
                return True

        return False

    def should_skip(self, name: str, at_filesystem_root: bool = False) -> bool:
        """Whether a directory is left out of listings entirely."""
        if name in self.skip_dirs:
            return True
        return at_filesystem_root and name in self.system_skip_dirs

    def is_in_folded_dir(self, path: str) -> bool:
        """Whether any component of path is a fold directory."""
        return any(part in self.fold_dirs for part in path.split(os.sep))

    def skip_for_large_files(self, path: str) -> bool:
        """Whether a file's extension excludes it from large-file tracking."""
        return os.path.splitext(path)[1].lower() in self.skip_extensions


def build_rules(extra_fold_dirs: list[str] | None = None) -> ScanRules:
    """Build the rules used for a session."""
    if not extra_fold_dirs:
        return ScanRules()
    return ScanRules(fold_dirs=FOLD_DIRECTORIES | frozenset(extra_fold_dirs))
