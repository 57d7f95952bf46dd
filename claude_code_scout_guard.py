#!/usr/bin/env python3
# Dependencies: bashlex, pyyaml
# Install with: pip install bashlex pyyaml

"""
Claude Code Scout Guard - Tool-call guard hook for Claude Code
Keeps the agent out of ignored paths and away from overly broad file enumeration,
while letting recognized build tooling run without path inspection
"""

import json
import sys
import os
import re
import shlex
import posixpath
from pathlib import Path
import yaml
import bashlex
from datetime import datetime
from typing import List, Optional, Dict, Any, Tuple, Union
from dataclasses import dataclass, field, replace
from abc import ABC, abstractmethod


MAX_COMMAND_LENGTH = 100_000
"""Commands longer than this skip bashlex and use the plain tokenizer."""

MAX_SUBCOMMANDS = 256
"""Upper bound on segments produced when splitting a compound command."""

MAX_LOG_ENTRIES = 100


# ============================================================================
# Data Models
# ============================================================================

@dataclass(frozen=True)
class PathAction:
    """Action addressing concrete paths (Read, Edit, Grep without pattern)"""
    target_path: Optional[str] = None
    other_path: Optional[str] = None


@dataclass(frozen=True)
class PatternAction:
    """File enumeration by pattern, optionally rooted at a base path"""
    pattern: str
    base_path: Optional[str] = None


@dataclass(frozen=True)
class CommandAction:
    """Shell command text"""
    command: str


@dataclass(frozen=True)
class EmptyAction:
    """Action carrying nothing the guard can inspect"""


Action = Union[PathAction, PatternAction, CommandAction, EmptyAction]


@dataclass(frozen=True)
class SubCommand:
    """One top-level segment of a compound command"""
    text: str


@dataclass
class GuardDecision:
    """Verdict for one proposed action"""
    blocked: bool
    path: Optional[str] = None
    rule: Optional[str] = None
    pattern: Optional[str] = None
    reason: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)
    is_broad_pattern: bool = False
    is_allowed_command: bool = False

    @classmethod
    def allow(cls, is_allowed_command: bool = False):
        return cls(blocked=False, is_allowed_command=is_allowed_command)

    @classmethod
    def block_path(cls, path: str, rule: str):
        return cls(blocked=True, path=path, rule=rule,
                   reason=f"Path matches blocked pattern: {rule}")

    @classmethod
    def block_broad_pattern(cls, pattern: str, reason: str, suggestions: List[str]):
        return cls(blocked=True, pattern=pattern, reason=reason,
                   suggestions=list(suggestions), is_broad_pattern=True)

    def to_dict(self) -> Dict[str, Any]:
        """Machine-readable form, omitting fields that do not apply"""
        result: Dict[str, Any] = {'blocked': self.blocked}
        if self.blocked:
            if self.is_broad_pattern:
                result.update({
                    'isBroadPattern': True,
                    'pattern': self.pattern,
                    'reason': self.reason,
                    'suggestions': list(self.suggestions),
                })
            else:
                result.update({'path': self.path, 'rule': self.rule, 'reason': self.reason})
        elif self.is_allowed_command:
            result['isAllowedCommand'] = True
        return result


@dataclass(frozen=True)
class GuardOptions:
    """Per-decision settings resolved from config and call overrides"""
    rule_resource_location: Optional[Path]
    check_broad_patterns: bool = True
    project_root: Optional[str] = None
    suggestion_directories: Tuple[str, ...] = ('src', 'lib', 'app', 'packages')


@dataclass
class GuardContext:
    """State threaded through the guard checks for one decision"""
    action: Action
    options: GuardOptions


def action_from_description(description: Any) -> Action:
    """Build the tagged action from a tool-input style dictionary.

    Accepts both the camelCase keys (targetPath, otherPath) and the Claude Code
    tool_input keys (file_path, path). Command text wins over a pattern, which
    wins over plain paths.
    """
    if not isinstance(description, dict):
        raise ValueError(f"Action description must be an object, got {type(description).__name__}")

    def text(*keys: str) -> Optional[str]:
        for key in keys:
            value = description.get(key)
            if isinstance(value, str) and value.strip():
                return value
        return None

    command = text('command')
    if command is not None:
        return CommandAction(command)

    target_path = text('targetPath', 'file_path', 'notebook_path')
    other_path = text('otherPath', 'path')

    pattern = text('pattern')
    if pattern is not None:
        return PatternAction(pattern, base_path=other_path or target_path)

    if target_path is None and other_path is None:
        return EmptyAction()
    return PathAction(target_path=target_path, other_path=other_path)


# ============================================================================
# Configuration Management
# ============================================================================

class ConfigManager:
    """Manages configuration loading and access"""

    CONFIG_ENV = 'SCOUT_GUARD_CONFIG'

    def __init__(self, config_path: Optional[Path] = None):
        env_path = os.environ.get(self.CONFIG_ENV)
        self.config_path = Path(config_path or env_path or
                                (Path(__file__).parent / 'claude_code_scout_guard_config.yaml'))
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration, falling back to defaults"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                user_config = yaml.safe_load(f) or {}
        except Exception:
            user_config = {}
        if not isinstance(user_config, dict):
            user_config = {}

        defaults = {
            'enabled': True,
            'rule_resource_location': '.claude/.ckignore',
            'check_broad_patterns': True,
            'suggestion_directories': ['src', 'lib', 'app', 'packages'],
            'system_config': {
                'debug_mode': False,
                'log_denials': True,
                'log_approvals': False,
                'log_directory': None
            }
        }

        return self._deep_merge(defaults, user_config)

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries"""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value"""
        return self.config.get(key, default)

    def get_system_config(self, option: str, default: Any = None) -> Any:
        """Get system configuration value"""
        return self.config.get('system_config', {}).get(option, default)


# ============================================================================
# Project Detection
# ============================================================================

class ProjectDetector:
    """Detects the project root that rule locations and anchored rules refer to"""

    PROJECT_DIR_ENV = 'CLAUDE_PROJECT_DIR'

    def detect_project_root(self) -> str:
        env_root = os.environ.get(self.PROJECT_DIR_ENV)
        if env_root:
            return str(Path(env_root).expanduser().resolve())

        current = Path.cwd().resolve()
        return str(self._find_project_markers(current))

    def _find_project_markers(self, start_path: Path) -> Path:
        """Find project root based on markers"""
        home_dir = Path.home().resolve()
        found_git_dir = None

        for path in [start_path] + list(start_path.parents):
            if path == home_dir or path == Path('/'):
                break

            # Nearest .claude directory holds the rule resource
            if (path / '.claude').is_dir():
                return path

            if found_git_dir is None and (path / '.git').exists():
                found_git_dir = path

        if found_git_dir:
            return found_git_dir

        return start_path


# ============================================================================
# Pattern Matcher
# ============================================================================

@dataclass(frozen=True)
class PatternRule:
    """One compiled ignore rule"""
    source: str
    negated: bool
    dir_only: bool
    anchored: bool
    regex: re.Pattern


@dataclass(frozen=True)
class Matcher:
    """Ordered, immutable rule set"""
    rules: Tuple[PatternRule, ...] = ()


@dataclass(frozen=True)
class MatchResult:
    blocked: bool
    rule: Optional[str] = None


def load_rules(location: Optional[Union[str, Path]]) -> List[str]:
    """Read rule lines; a missing or unreadable resource yields no rules"""
    if not location:
        return []
    try:
        with open(location, 'r', encoding='utf-8') as f:
            return f.read().splitlines()
    except (OSError, UnicodeDecodeError):
        return []


def _translate_segment(segment: str) -> str:
    """Translate one path segment of a glob into a regex fragment"""
    out = []
    i = 0
    n = len(segment)
    while i < n:
        ch = segment[i]
        if ch == '\\':
            if i + 1 >= n:
                raise ValueError("dangling escape")
            out.append(re.escape(segment[i + 1]))
            i += 2
            continue
        if ch == '*':
            while i < n and segment[i] == '*':
                i += 1
            out.append('[^/]*')
            continue
        if ch == '?':
            out.append('[^/]')
        elif ch == '[':
            j = i + 1
            negate = j < n and segment[j] in '!^'
            if negate:
                j += 1
            # a leading ']' is literal
            if j < n and segment[j] == ']':
                j += 1
            while j < n and segment[j] != ']':
                j += 1
            if j >= n:
                raise ValueError(f"unterminated character class in {segment!r}")
            start = i + 1 + (1 if negate else 0)
            body = ''.join('\\' + c if c in '\\^[]' else c for c in segment[start:j])
            out.append(('[^/' if negate else '[') + body + ']')
            i = j
        else:
            out.append(re.escape(ch))
        i += 1
    return ''.join(out)


def _translate_glob(body: str, anchored: bool) -> str:
    segments = body.split('/')
    parts = [] if anchored else ['(?:[^/]*/)*']
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == '**':
            parts.append('.*' if last else '(?:[^/]*/)*')
            continue
        parts.append(_translate_segment(segment))
        if not last:
            parts.append('/')
    return '(?s:' + ''.join(parts) + r')\Z'


def parse_rule(line: str) -> Optional[PatternRule]:
    """Parse one gitignore-style line; comments, blanks and malformed lines give None"""
    text = line.rstrip('\r\n')
    stripped = text.rstrip(' \t')
    # "\ " keeps one trailing space
    if stripped.endswith('\\') and len(stripped) < len(text):
        stripped += ' '
    if not stripped or stripped.startswith('#'):
        return None

    negated = stripped.startswith('!')
    body = stripped[1:] if negated else stripped

    dir_only = body.endswith('/')
    body = body.rstrip('/')
    anchored = '/' in body
    body = body.lstrip('/')
    if not body:
        return None

    try:
        regex = re.compile(_translate_glob(body, anchored))
    except (re.error, ValueError):
        return None

    return PatternRule(source=stripped, negated=negated, dir_only=dir_only,
                       anchored=anchored, regex=regex)


def compile_rules(lines: List[str]) -> Matcher:
    rules = []
    for line in lines:
        rule = parse_rule(line)
        if rule is not None:
            rules.append(rule)
    return Matcher(rules=tuple(rules))


def normalize_candidate(path: str, project_root: Optional[str] = None) -> str:
    """Normalize a candidate path into the slash-separated form rules match against.

    Absolute paths inside the project root become root-relative; other absolute
    paths lose their leading slash so unanchored rules still apply. A trailing
    slash is kept to mark an explicit directory.
    """
    text = path.strip().replace('\\', '/')
    if not text:
        return ''
    explicit_dir = text.endswith('/')

    if project_root and text.startswith('/'):
        root = project_root.replace('\\', '/').rstrip('/')
        if root and text.rstrip('/') == root:
            return ''
        if root and text.startswith(root + '/'):
            text = text[len(root) + 1:]

    text = posixpath.normpath(text).lstrip('/')
    if text in ('', '.'):
        return ''
    return text + '/' if explicit_dir else text


def match_path(matcher: Matcher, path: str, project_root: Optional[str] = None) -> MatchResult:
    """Evaluate every rule in order; the last one matching the path decides.

    A rule matches when it matches the path itself or any of its parent
    directories. Directory-only rules match the final component only when it
    may be a directory (explicit trailing slash, or no file extension).
    A negation re-includes a path only when it matches at the same depth as
    the exclusion or deeper: "*.pem" then "!certs" keeps certs/server.pem
    blocked, "build/" then "!build/" re-includes build/out.js.
    """
    normalized = normalize_candidate(path, project_root)
    if not normalized or not matcher.rules:
        return MatchResult(blocked=False)

    explicit_dir = normalized.endswith('/')
    segments = normalized.rstrip('/').split('/')
    candidates = ['/'.join(segments[:i]) for i in range(1, len(segments) + 1)]
    final_may_be_dir = explicit_dir or posixpath.splitext(segments[-1])[1] == ''

    last = len(candidates) - 1
    decided = None
    decided_depth = 0
    for rule in matcher.rules:
        depths = [index for index, candidate in enumerate(candidates)
                  if not (rule.dir_only and index == last and not final_may_be_dir)
                  and rule.regex.match(candidate)]
        if not depths:
            continue
        if not rule.negated:
            # exclusion holds from the shallowest matching directory down
            decided, decided_depth = rule, depths[0]
        elif decided is None or decided.negated or depths[-1] >= decided_depth:
            decided, decided_depth = rule, depths[-1]

    if decided is None:
        return MatchResult(blocked=False)
    return MatchResult(blocked=not decided.negated, rule=decided.source)


# ============================================================================
# Command Classifier
# ============================================================================

PACKAGE_MANAGERS = ('npm', 'pnpm', 'yarn', 'bun')

SAFE_PACKAGE_VERBS = (
    'build', 'test', 'lint', 'dev', 'start', 'install', 'ci', 'add', 'remove',
    'update', 'publish', 'pack', 'init', 'create', 'exec'
)

# JS/TS, Go, Rust, Java, .NET, containers, IaC, Python, Ruby, PHP, Deno, Elixir
TOOLCHAIN_BINARIES = (
    'npx', 'pnpx', 'bunx', 'tsc', 'esbuild', 'vite', 'webpack', 'rollup', 'turbo', 'nx',
    'jest', 'vitest', 'mocha', 'eslint', 'prettier', 'go', 'cargo', 'make', 'mvn', 'mvnw',
    'gradle', 'gradlew', 'dotnet', 'docker', 'docker-compose', 'podman', 'kubectl', 'helm',
    'terraform', 'ansible', 'bazel', 'cmake', 'sbt', 'flutter', 'swift', 'ant', 'ninja',
    'meson', 'python', 'python3', 'pip', 'pip3', 'uv', 'uvx', 'deno', 'bundle', 'rake',
    'gem', 'php', 'composer', 'ruby', 'mix', 'elixir'
)

WRAPPER_COMMANDS = ('sudo', 'env', 'nice', 'nohup', 'time', 'timeout')

# pnpm --filter web run build, yarn workspace app build, npm -w pkg test
BUILD_COMMAND_PATTERN = re.compile(
    r'^(?:' + '|'.join(PACKAGE_MANAGERS) + r')\s+'
    r'(?:(?:-{1,2}[\w-]+(?:=\S+)?|workspace)(?:\s+[^\s-]\S*)?\s+)*'
    r'(?:run(?:-script)?\s+)?'
    r'(?:' + '|'.join(SAFE_PACKAGE_VERBS) + r')(?!\w)'
)

TOOL_COMMAND_PATTERN = re.compile(
    r'^(?:\./)?(?:' + '|'.join(re.escape(b) for b in TOOLCHAIN_BINARIES) + r')(?![\w-])'
)

# .venv/bin/, venv/bin/ (Unix) and .venv\Scripts\, venv\Scripts\ (Windows)
VENV_EXECUTABLE_PATTERN = re.compile(r'^(?:\S*[/\\])?\.?venv[/\\](?:bin|Scripts)[/\\]\S')

# python -m venv, py -3.11 -m venv, uv venv, virtualenv
VENV_CREATION_PATTERN = re.compile(
    r'^(?:python3?|py)\s+(?:-[\w.]+\s+)*-m\s+venv(?:\s|$)'
    r'|^uv\s+venv(?:\s|$)'
    r'|^virtualenv(?:\s|$)'
)

# KEY=VALUE assignments and wrappers with their flags and numeric argument
COMMAND_PREFIX_PATTERN = re.compile(
    r'^(?:(?:[A-Za-z_]\w*=\S*'
    r'|(?:' + '|'.join(WRAPPER_COMMANDS) + r')'
    r'(?:\s+-{1,2}[\w-]+(?:=\S+)?)*(?:\s+\d+(?:\.\d+)?[smhd]?)?'
    r')\s+)+'
)

SHELL_EXECUTOR_PATTERN = re.compile(
    r"""^(?:(?:bash|sh|zsh)\s+-c|eval)\s+(?:'([^']+)'|"((?:[^"\\]|\\.)+)")\s*$""",
    re.DOTALL
)

COMPOUND_OPERATOR_PATTERN = re.compile(r'\s*(?:&&|\|\||;)\s*')


def normalize(command: str) -> str:
    """Strip leading env assignments and process wrappers.

    e.g. "NODE_ENV=production npm run build" -> "npm run build",
    "sudo env CI=1 nice -n 10 make" -> "make"
    """
    if not command or not isinstance(command, str):
        return command
    return COMMAND_PREFIX_PATTERN.sub('', command.strip(), count=1).strip()


def unwrap_executor(command: str) -> str:
    """Return the inner string of bash -c '...' / eval "...", else the command unchanged"""
    if not command or not isinstance(command, str):
        return command
    match = SHELL_EXECUTOR_PATTERN.match(command.strip())
    if not match:
        return command
    if match.group(1) is not None:
        return match.group(1)
    return re.sub(r'\\([$`"\\\n])', r'\1', match.group(2))


def split_command(command: str) -> List[SubCommand]:
    """Split on top-level &&, || and ;.

    Newlines are not separators (heredoc bodies, multi-line strings). Operators
    inside quotes are split as well; the lexer does not track quoting.
    """
    if not command or not isinstance(command, str):
        return []
    parts = COMPOUND_OPERATOR_PATTERN.split(command, maxsplit=MAX_SUBCOMMANDS - 1)
    return [SubCommand(part.strip()) for part in parts if part and part.strip()]


def is_build_command(command: str) -> bool:
    return bool(BUILD_COMMAND_PATTERN.match(command) or TOOL_COMMAND_PATTERN.match(command))


def is_venv_executable(command: str) -> bool:
    return bool(VENV_EXECUTABLE_PATTERN.match(command))


def is_venv_creation_command(command: str) -> bool:
    return bool(VENV_CREATION_PATTERN.match(command))


def classify(sub_command: Union[SubCommand, str]) -> bool:
    """True when the normalized sub-command starts with a recognized tooling shape"""
    text = sub_command.text if isinstance(sub_command, SubCommand) else sub_command
    if not text or not isinstance(text, str):
        return False
    # overflow segment past MAX_SUBCOMMANDS still holds operators
    if COMPOUND_OPERATOR_PATTERN.search(text):
        return False
    stripped = normalize(text)
    return is_build_command(stripped) or is_venv_executable(stripped) or is_venv_creation_command(stripped)


# ============================================================================
# Path Extractor
# ============================================================================

SHELL_OPERATORS = frozenset({'|', '||', '&', '&&', ';', ';;', '(', ')', '{', '}', '!',
                             '<', '>', '>>', '<<', '<<<', '2>', '2>>', '&>', '>&', '|&'})

# Bare names that are paths even without a slash or extension
KNOWN_DIRECTORY_NAMES = frozenset({
    'node_modules', '__pycache__', '.git', '.venv', 'venv', 'vendor',
    '.next', '.nuxt', '.turbo', '.cache', 'coverage'
})

URL_PATTERN = re.compile(r'^[A-Za-z][\w+.-]*://')
FILE_NAME_PATTERN = re.compile(r'^[\w.*?\[\]{}@+-]*\.(?=[\w]*[A-Za-z])[\w]{1,16}$')
REDIRECT_PREFIX_PATTERN = re.compile(r'^\d*(?:[<>]+|&>)&?')
WINDOWS_DRIVE_PATTERN = re.compile(r'^[A-Za-z]:[\\/]')


def looks_like_path(token: str) -> bool:
    """Heuristic: is this command word a filesystem path?

    Errs on the side of rejecting: URLs, key=value pairs, flags, remote specs
    (host:path) and anything containing whitespace are not paths.
    """
    if not token or len(token) > 4096:
        return False
    if any(ch.isspace() for ch in token):
        return False
    if token.startswith('-') or token in SHELL_OPERATORS:
        return False
    if token in ('.', '..', '/', '~', '*'):
        return False
    if URL_PATTERN.match(token) or '=' in token:
        return False
    if ':' in token and not WINDOWS_DRIVE_PATTERN.match(token):
        return False
    if '/' in token or '\\' in token:
        return True
    if token in KNOWN_DIRECTORY_NAMES:
        return True
    if token.startswith('.'):
        return True
    return bool(FILE_NAME_PATTERN.match(token))


class CommandPathExtractor:
    """Collects path-shaped arguments from command text"""

    def extract(self, command: str) -> List[str]:
        if len(command) > MAX_COMMAND_LENGTH:
            words = self._tokenize(command)
        else:
            try:
                words = []
                self._collect_words(bashlex.parse(command), words)
            except Exception:
                words = self._tokenize(command)
        return [w for w in words if looks_like_path(w)]

    def _collect_words(self, nodes: Any, words: List[str]):
        """Walk the bashlex AST collecting argument and redirect-target words"""
        if isinstance(nodes, list):
            for node in nodes:
                self._collect_words(node, words)
            return
        if not hasattr(nodes, 'kind'):
            return

        if nodes.kind == 'command':
            seen_command_word = False
            for part in getattr(nodes, 'parts', []):
                if part.kind == 'word' and not seen_command_word:
                    # command name: only substitutions inside it are of interest
                    seen_command_word = True
                    self._collect_words(getattr(part, 'parts', []), words)
                    continue
                self._collect_words(part, words)
            return

        if nodes.kind == 'word':
            words.append(nodes.word)
        elif nodes.kind == 'redirect':
            output = getattr(nodes, 'output', None)
            if hasattr(output, 'kind'):
                self._collect_words(output, words)
            return

        for attr in ('parts', 'list', 'command', 'body', 'redirects'):
            child = getattr(nodes, attr, None)
            if child is not None:
                self._collect_words(child, words)

    def _tokenize(self, command: str) -> List[str]:
        """Fallback for text bashlex cannot parse"""
        try:
            tokens = shlex.split(command, posix=True)
        except ValueError:
            tokens = command.split()

        words = []
        expect_command = True
        for token in tokens:
            if token in SHELL_OPERATORS and token not in ('<', '>', '>>', '2>', '2>>', '&>'):
                expect_command = True
                continue
            token = REDIRECT_PREFIX_PATTERN.sub('', token)
            if not token:
                continue
            if expect_command:
                if re.match(r'^[A-Za-z_]\w*=', token):
                    continue
                expect_command = False
                continue
            words.append(token)
        return words


def extract_paths(action: Action) -> List[str]:
    """Candidate paths referenced by an action, in order, without duplicates"""
    if isinstance(action, CommandAction):
        found = CommandPathExtractor().extract(action.command)
    elif isinstance(action, PatternAction):
        # patterns are matched raw; the rules understand globs
        found = [action.pattern, action.base_path]
    elif isinstance(action, PathAction):
        found = [action.target_path, action.other_path]
    elif isinstance(action, EmptyAction):
        found = []
    else:
        raise TypeError(f"Unsupported action: {action!r}")

    paths: List[str] = []
    for path in found:
        if path and path not in paths:
            paths.append(path)
    return paths


# ============================================================================
# Broad-Pattern Detector
# ============================================================================

@dataclass(frozen=True)
class BroadPatternResult:
    blocked: bool
    reason: Optional[str] = None
    suggestions: Tuple[str, ...] = ()


GLOB_CHARS = frozenset('*?[{')
OPEN_NAME_SEGMENTS = frozenset({'*', '*.*'})
EXTENSION_SEGMENT_PATTERN = re.compile(r'^\*\.(?:[\w-]+|\{[\w,-]+\})$')
DEFAULT_SUGGESTION_DIRECTORIES = ('src', 'lib', 'app', 'packages')


def _is_high_level_scope(scope: str, project_root: Optional[str]) -> bool:
    """Is the directory a pattern enumerates from the repository root or above?"""
    scope = scope.replace('\\', '/')
    if scope.startswith('~'):
        return scope.rstrip('/') == '~' or scope.count('/') <= 1
    if not scope.startswith('/'):
        scope = posixpath.normpath(scope) if scope else '.'
        return scope == '.' or scope == '..' or scope.startswith('../')

    scope = posixpath.normpath(scope).rstrip('/')
    if not scope:
        return True
    if project_root:
        root = project_root.replace('\\', '/').rstrip('/')
        return scope == root or root.startswith(scope + '/')
    return scope.count('/') <= 2


def assess_pattern(pattern: str, base_path: Optional[str] = None,
                   project_root: Optional[str] = None,
                   suggestion_directories: Tuple[str, ...] = DEFAULT_SUGGESTION_DIRECTORIES) -> BroadPatternResult:
    """Judge whether an enumeration pattern will likely return too many files.

    Two shapes are flagged when they enumerate from the repository root (or
    higher): recursive wildcards with no name qualifier ("**", "**/*") and
    recursive extension-only patterns ("**/*.ts", "**/*.{ts,tsx}"). Anything
    anchored to a named subtree or carrying a name qualifier passes.
    """
    if not pattern or not isinstance(pattern, str):
        return BroadPatternResult(blocked=False)

    normalized = pattern.strip().replace('\\', '/')
    absolute = normalized.startswith('/')
    while normalized.startswith('./'):
        normalized = normalized[2:]
    segments = [s for s in normalized.split('/') if s and s != '.']

    prefix: List[str] = []
    for segment in segments:
        if any(ch in GLOB_CHARS for ch in segment):
            break
        prefix.append(segment)
    tail = segments[len(prefix):]

    if '**' not in tail:
        return BroadPatternResult(blocked=False)

    names = [s for s in tail if s != '**']
    if all(s in OPEN_NAME_SEGMENTS for s in names):
        extension = None
    elif (EXTENSION_SEGMENT_PATTERN.match(names[-1])
          and all(s in OPEN_NAME_SEGMENTS for s in names[:-1])):
        extension = names[-1]
    else:
        return BroadPatternResult(blocked=False)

    literal = '/'.join(prefix)
    if absolute:
        scope = '/' + literal
    elif base_path:
        scope = posixpath.join(base_path.replace('\\', '/'), literal) if literal else base_path
    else:
        scope = literal
    if not _is_high_level_scope(scope, project_root):
        return BroadPatternResult(blocked=False)

    directories = tuple(suggestion_directories) or DEFAULT_SUGGESTION_DIRECTORIES
    if extension is None:
        reason = (f"Pattern '{pattern}' matches every file in every directory from the "
                  f"repository root and may flood the context with results")
        suggestions = tuple(f"{d}/**/*" for d in directories)
    else:
        reason = (f"Pattern '{pattern}' searches the whole repository for {extension} files; "
                  f"scope it to a subdirectory")
        suggestions = tuple(f"{d}/**/{extension}" for d in directories)
    return BroadPatternResult(blocked=True, reason=reason, suggestions=suggestions)


# ============================================================================
# Guard Check Base Class
# ============================================================================

class GuardCheck(ABC):
    """One stage of the decision pipeline"""

    @abstractmethod
    def check(self, context: GuardContext) -> Optional[GuardDecision]:
        """Return a final decision, or None to continue with the next check"""
        pass


# ============================================================================
# Individual Guard Checks
# ============================================================================

class CommandAllowlistCheck(GuardCheck):
    """Allow commands made only of recognized tooling, narrow the rest.

    Splitting must come before classification: the allow-grammar has no end
    anchor and would match the prefix of "npm run build && cat dist/app.js".
    """

    def check(self, context: GuardContext) -> Optional[GuardDecision]:
        action = context.action
        if not isinstance(action, CommandAction):
            return None

        unwrapped = unwrap_executor(action.command)
        if unwrapped != action.command:
            action = replace(action, command=unwrapped)

        sub_commands = split_command(action.command)
        if not sub_commands:
            context.action = action
            return None

        non_allowed = [sub for sub in sub_commands if not classify(sub)]
        if not non_allowed:
            return GuardDecision.allow(is_allowed_command=True)

        # only inspect paths in the sub-commands that were not approved
        if len(non_allowed) < len(sub_commands):
            action = replace(action, command=' ; '.join(sub.text for sub in non_allowed))
        context.action = action
        return None


class BroadPatternCheck(GuardCheck):
    """Block enumeration patterns likely to return an excessive result set"""

    def check(self, context: GuardContext) -> Optional[GuardDecision]:
        if not context.options.check_broad_patterns:
            return None
        action = context.action
        if not isinstance(action, PatternAction):
            return None

        result = assess_pattern(action.pattern, action.base_path,
                                project_root=context.options.project_root,
                                suggestion_directories=context.options.suggestion_directories)
        if not result.blocked:
            return None
        return GuardDecision.block_broad_pattern(
            action.pattern,
            result.reason or 'Pattern too broad - may fill context with too many files',
            list(result.suggestions)
        )


class PathRuleCheck(GuardCheck):
    """Block actions touching a path excluded by the rule resource"""

    def check(self, context: GuardContext) -> Optional[GuardDecision]:
        matcher = compile_rules(load_rules(context.options.rule_resource_location))

        paths = extract_paths(context.action)
        if not paths:
            return GuardDecision.allow()

        for path in paths:
            result = match_path(matcher, path, context.options.project_root)
            if result.blocked:
                return GuardDecision.block_path(path, result.rule)

        return GuardDecision.allow()


# ============================================================================
# Logging
# ============================================================================

class Logger:
    """Handles logging of guard decisions"""

    def __init__(self, config: ConfigManager, log_dir: Optional[Path] = None):
        self.config = config
        configured = config.get_system_config('log_directory')
        self.log_dir = Path(log_dir or configured or (Path(__file__).parent / 'logs'))
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def log_decision(self, tool_name: str, summary: str, decision: GuardDecision, project_root: str):
        """Log a guard decision"""
        allowed = not decision.blocked
        should_log = self.config.get_system_config(
            'log_approvals' if allowed else 'log_denials',
            not allowed  # Default: log denials
        )

        if not should_log:
            return

        entry = {
            'timestamp': datetime.now().isoformat(),
            'tool': tool_name,
            'input': summary,
            'action': 'approved' if allowed else 'rejected',
            'reason': decision.reason or ('recognized tooling' if decision.is_allowed_command else None),
            'runtime_dir': project_root
        }

        filename = 'scout_approvals.json' if allowed else 'scout_denials.json'
        log_file = self.log_dir / filename

        if log_file.exists():
            try:
                with open(log_file, 'r', encoding='utf-8') as f:
                    logs = json.load(f)
            except (OSError, ValueError):
                logs = []
            if not isinstance(logs, list):
                logs = []
        else:
            logs = []

        logs.append(entry)
        logs = logs[-MAX_LOG_ENTRIES:]

        with open(log_file, 'w', encoding='utf-8') as f:
            json.dump(logs, f, indent=2)


def summarize_action(action: Action) -> str:
    if isinstance(action, CommandAction):
        return action.command
    if isinstance(action, PatternAction):
        return f"{action.pattern} (in {action.base_path})" if action.base_path else action.pattern
    if isinstance(action, PathAction):
        return ' '.join(p for p in (action.target_path, action.other_path) if p)
    return ''


def format_block_message(decision: GuardDecision) -> str:
    """Human-readable explanation for a blocked decision"""
    if not decision.blocked:
        return ''
    if decision.is_broad_pattern:
        lines = [f"Blocked: {decision.reason}"]
        if decision.suggestions:
            lines.append('Try a narrower pattern:')
            lines.extend(f"  - {s}" for s in decision.suggestions)
        return '\n'.join(lines)
    return (f"Blocked: '{decision.path}' matches ignore rule '{decision.rule}'. "
            f"This path is excluded from agent access; use a different path or update .ckignore.")


# ============================================================================
# Main Guard Class
# ============================================================================

class ScoutGuard:
    """Main guard orchestrator"""

    def __init__(self, config: Optional[ConfigManager] = None, project_root: Optional[str] = None):
        self.config = config or ConfigManager()
        self.project_root = project_root or ProjectDetector().detect_project_root()

        # Order matters: tooling short-circuit, breadth, then path rules
        self.checks: List[GuardCheck] = [
            CommandAllowlistCheck(),
            BroadPatternCheck(),
            PathRuleCheck()
        ]

    def resolve_options(self, overrides: Optional[Dict[str, Any]] = None) -> GuardOptions:
        overrides = overrides or {}

        project_root = overrides.get('projectRoot')
        if not isinstance(project_root, str) or not project_root:
            project_root = self.project_root

        location = overrides.get('ruleResourceLocation')
        if not isinstance(location, str) or not location:
            location = self.config.get('rule_resource_location')
        rule_path = None
        if isinstance(location, str) and location:
            rule_path = Path(location).expanduser()
            if not rule_path.is_absolute():
                rule_path = Path(project_root) / rule_path

        check_broad = overrides.get('checkBroadPatterns')
        if not isinstance(check_broad, bool):
            check_broad = bool(self.config.get('check_broad_patterns', True))

        directories = self.config.get('suggestion_directories') or DEFAULT_SUGGESTION_DIRECTORIES
        return GuardOptions(
            rule_resource_location=rule_path,
            check_broad_patterns=check_broad,
            project_root=project_root,
            suggestion_directories=tuple(str(d) for d in directories)
        )

    def decide(self, tool_name: str, action: Action,
               options: Optional[Dict[str, Any]] = None) -> GuardDecision:
        """Judge one proposed action.

        tool_name is the host's name for the tool; the verdict depends only on
        the shape of the action, so a Grep carrying a pattern is assessed for
        breadth the same way a Glob is.
        """
        if not self.config.get('enabled', True):
            return GuardDecision.allow()

        context = GuardContext(action=action, options=self.resolve_options(options))
        for check in self.checks:
            decision = check.check(context)
            if decision is not None:
                return decision

        return GuardDecision.allow()


def parse_payload(payload: Any) -> Tuple[str, Action, Dict[str, Any]]:
    """Split an invocation into tool name, action and options.

    Accepts {toolName, actionDescription, options} as well as the Claude Code
    hook shape {tool_name, tool_input}.
    """
    if not isinstance(payload, dict):
        raise ValueError("Invocation payload must be an object")

    tool_name = payload.get('toolName', payload.get('tool_name', ''))
    if not isinstance(tool_name, str):
        raise ValueError("Tool name must be a string")

    description = payload.get('actionDescription', payload.get('tool_input', {}))
    options = payload.get('options') or {}
    if not isinstance(options, dict):
        raise ValueError("Options must be an object")

    return tool_name, action_from_description(description), options


def evaluate(payload: Any, guard: Optional[ScoutGuard] = None) -> GuardDecision:
    """Host-facing entry: never raises, fails open on any error"""
    try:
        tool_name, action, options = parse_payload(payload)
        guard = guard or ScoutGuard()
        return guard.decide(tool_name, action, options)
    except Exception as e:
        print(f"Scout guard error: {type(e).__name__}: {e}", file=sys.stderr)
        return GuardDecision.allow()


# ============================================================================
# Entry Point
# ============================================================================

def main():
    """Main entry function"""
    try:
        input_data = json.load(sys.stdin)

        guard = ScoutGuard()
        decision = evaluate(input_data, guard)

        if guard.config.get_system_config('debug_mode', False):
            print(f"DEBUG: Project root directory: {guard.project_root}", file=sys.stderr)
            print(f"DEBUG: Current working directory: {os.getcwd()}", file=sys.stderr)
            print(f"DEBUG: Decision: {json.dumps(decision.to_dict())}", file=sys.stderr)

        try:
            _, action, _ = parse_payload(input_data)
            summary = summarize_action(action)
        except ValueError:
            summary = ''
        tool_name = input_data.get('tool_name', input_data.get('toolName', '')) if isinstance(input_data, dict) else ''

        try:
            Logger(guard.config).log_decision(str(tool_name), summary, decision, guard.project_root)
        except OSError as e:
            print(f"Scout guard logging error: {e}", file=sys.stderr)

        # No output on allow: the normal permission flow continues
        if not decision.blocked:
            sys.exit(0)

        message = format_block_message(decision)
        response = {
            "hookSpecificOutput": {
                "hookEventName": "PreToolUse",
                "permissionDecision": "deny",
                "permissionDecisionReason": message
            }
        }

        print(json.dumps(response))
        print(message, file=sys.stderr)
        sys.exit(2)

    except Exception as e:
        # On error, allow execution
        print(f"Hook execution error: {str(e)}", file=sys.stderr)
        sys.exit(0)


if __name__ == '__main__':
    main()
