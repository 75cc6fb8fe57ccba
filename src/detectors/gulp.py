"""gulp build warnings (`[gulp] [task] Warning - ...`)."""

from monobuild.classifier import Severity, rule


@rule(pattern=r"^\s*(?:\[[^\]]*\]\s*)*Warning - (?P<message>.+)$", severity=Severity.WARNING)
def gulp_warning(match):
    return {"message": match.group("message").strip()}
