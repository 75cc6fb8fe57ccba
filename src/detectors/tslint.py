"""TSLint findings, both the gulp task format and the `prose` formatter."""

from monobuild.classifier import Severity, rule


@rule(
    pattern=(
        r"^\s*(?:\[[^\]]*\]\s*)*(?:Error - )?tslint: "
        r"(?P<file>[^(]+)\((?P<line>\d+),(?P<column>\d+)\): (?P<message>.*)$"
    ),
    severity=Severity.ERROR,
)
def tslint(match):
    return match.groupdict()


_PROSE = (
    r"(?:\((?P<code>[\w/-]+)\) )?"
    r"(?P<file>[^\[]+)\[(?P<line>\d+), (?P<column>\d+)\]: (?P<message>.*)$"
)


@rule(pattern=r"^ERROR: " + _PROSE, severity=Severity.ERROR)
def tslint_prose_error(match):
    return match.groupdict()


@rule(pattern=r"^WARNING: " + _PROSE, severity=Severity.WARNING)
def tslint_prose_warning(match):
    return match.groupdict()
