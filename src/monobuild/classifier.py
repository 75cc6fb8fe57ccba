"""Rule-based classification of build output into errors and warnings.

A rule is a compiled pattern plus an ``extract`` function that pulls the
message (and, when the tool reports it, file/line/column/code) out of a match.
Rules are declared in the ``detectors`` package with the :func:`rule`
decorator and collected into an ordered ruleset.

The reporting mode only changes how a finding is rendered. Which lines are
errors or warnings depends on the ruleset alone.
"""

from __future__ import annotations

import enum
import importlib
import pkgutil
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .errors import ConfigurationError
from .logging import get_logger


log = get_logger("monobuild.classifier")

DETECTORS_PACKAGE = "detectors"
DEFAULT_DETECTORS = ["failing_tests", "typescript", "tslint", "gulp"]


class Severity(str, enum.Enum):
    ERROR = "error"
    WARNING = "warning"


class ReportingMode(str, enum.Enum):
    LOCAL = "local"
    VSO = "vso"


@dataclass(frozen=True)
class Rule:
    name: str
    pattern: re.Pattern
    severity: Severity
    extract: Callable[[re.Match], dict]


@dataclass(frozen=True)
class Finding:
    severity: Severity
    rule: str
    source_line: str
    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    code: Optional[str] = None
    rendered: str = ""


def rule(pattern: str, severity: Severity, name: str | None = None, flags: int = 0):
    """Decorator to declare a classification rule on an extract function.

    The wrapped function receives the ``re.Match`` for a line and returns a
    dict with ``message`` and optionally ``file``, ``line``, ``column``, ``code``.
    """

    def deco(fn: Callable[[re.Match], dict]):
        spec = Rule(
            name=name or fn.__name__.replace("_", "-"),
            pattern=re.compile(pattern, flags),
            severity=Severity(severity),
            extract=fn,
        )
        setattr(fn, "_rule", spec)
        return fn

    return deco


def _location(fields: dict) -> str:
    location = fields.get("file") or ""
    if location and fields.get("line") is not None:
        if fields.get("column") is not None:
            location += f"({fields['line']},{fields['column']})"
        else:
            location += f"({fields['line']})"
    return location


_VSO_DATA_ESCAPES = (("%", "%25"), ("\r", "%0D"), ("\n", "%0A"))
_VSO_PROPERTY_ESCAPES = _VSO_DATA_ESCAPES + ((";", "%3B"), ("]", "%5D"))


def _vso_escape(value, escapes) -> str:
    text = str(value)
    # "%" goes first so later escapes are not re-encoded
    for raw, encoded in escapes:
        text = text.replace(raw, encoded)
    return text


def render(fields: dict, severity: Severity, mode: ReportingMode) -> str:
    message = fields.get("message") or ""
    if mode is ReportingMode.VSO:
        props = [f"type={severity.value}"]
        for key, prop in (
            ("file", "sourcepath"),
            ("line", "linenumber"),
            ("column", "columnnumber"),
            ("code", "code"),
        ):
            if fields.get(key) is not None:
                props.append(f"{prop}={_vso_escape(fields[key], _VSO_PROPERTY_ESCAPES)}")
        return f"##vso[task.logissue {';'.join(props)}]{_vso_escape(message, _VSO_DATA_ESCAPES)}"

    location = _location(fields)
    if not location:
        return message
    label = severity.value
    if fields.get("code"):
        label += f" {fields['code']}"
    return f"{location}: {label}: {message}"


def _as_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _apply(spec: Rule, line: str, mode: ReportingMode) -> Optional[Finding]:
    match = spec.pattern.search(line)
    if match is None:
        return None
    try:
        fields = dict(spec.extract(match) or {})
        fields["line"] = _as_int(fields.get("line"))
        fields["column"] = _as_int(fields.get("column"))
        fields.setdefault("message", line.strip())
        rendered = render(fields, spec.severity, mode)
    except Exception as e:  # noqa: BLE001
        log.warning("Rule %s failed on line %r: %s", spec.name, line, e)
        return None
    return Finding(
        severity=spec.severity,
        rule=spec.name,
        source_line=line,
        message=fields["message"],
        file=fields.get("file"),
        line=fields["line"],
        column=fields["column"],
        code=fields.get("code"),
        rendered=rendered,
    )


def classify(
    lines: Iterable[str],
    mode: ReportingMode,
    ruleset: Sequence[Rule],
    first_match: bool = False,
) -> List[Finding]:
    """Test every line against every rule and return findings in input order.

    All matching rules report for a line, in ruleset order, unless
    ``first_match`` is set, in which case the first matching rule wins.
    """
    mode = ReportingMode(mode)
    findings: List[Finding] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        for spec in ruleset:
            finding = _apply(spec, line, mode)
            if finding is None:
                continue
            findings.append(finding)
            if first_match:
                break
    return findings


class ErrorDetector:
    """A ruleset bound to a reporting mode, shared by every build task of a run."""

    def __init__(
        self,
        ruleset: Sequence[Rule],
        mode: ReportingMode = ReportingMode.LOCAL,
        first_match: bool = False,
    ):
        self.ruleset = list(ruleset)
        self.mode = ReportingMode(mode)
        self.first_match = first_match

    def classify(self, lines: Iterable[str]) -> List[Finding]:
        return classify(lines, self.mode, self.ruleset, first_match=self.first_match)


def discover_rules() -> Dict[str, List[Rule]]:
    """Import all modules in the `detectors` package and collect decorated rules."""
    specs: Dict[str, List[Rule]] = {}
    try:
        pkg = importlib.import_module(DETECTORS_PACKAGE)
    except ModuleNotFoundError:
        log.warning("No detectors package found.")
        return specs
    for m in pkgutil.iter_modules(pkg.__path__, prefix=f"{DETECTORS_PACKAGE}."):
        try:
            mod = importlib.import_module(m.name)
        except Exception as e:  # noqa: BLE001
            log.warning("Failed to import %s: %s", m.name, e)
            continue
        found = []
        for attr_name in dir(mod):
            obj = getattr(mod, attr_name)
            spec = getattr(obj, "_rule", None)
            if isinstance(spec, Rule) and getattr(obj, "__module__", None) == m.name:
                found.append((obj.__code__.co_firstlineno, spec))
        if found:
            specs[m.name.rsplit(".", 1)[-1]] = [spec for _, spec in sorted(found, key=lambda x: x[0])]
    return specs


def build_ruleset(names: Sequence[str] | None = None) -> List[Rule]:
    """Concatenate the rules of the named detector modules, in the given order."""
    available = discover_rules()
    names = list(DEFAULT_DETECTORS if names is None else names)
    missing = [n for n in names if n not in available]
    if missing:
        raise ConfigurationError(
            "Unknown detectors: "
            + ", ".join(missing)
            + ". Available: "
            + ", ".join(sorted(available))
        )
    ruleset: List[Rule] = []
    for n in names:
        ruleset.extend(available[n])
    return ruleset
