"""TypeScript compiler diagnostics.

Matches plain `tsc` output and the same diagnostic behind gulp task prefixes, e.g.
`[gulp] [typescript] Error - typescript: src/index.ts(12,5): error TS2304: Cannot find name 'foo'.`
"""

from monobuild.classifier import Severity, rule


@rule(
    pattern=(
        r"^\s*(?:\[[^\]]*\]\s*)*(?:Error - )?(?:typescript: )?"
        r"(?P<file>[^\s(][^(]*)\((?P<line>\d+),(?P<column>\d+)\): "
        r"error (?P<code>TS\d+): (?P<message>.*)$"
    ),
    severity=Severity.ERROR,
)
def typescript(match):
    return match.groupdict()
