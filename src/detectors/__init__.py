"""Detector modules live here.

Add modules like `typescript.py`, `tslint.py`, etc., and decorate extract functions with
`@monobuild.classifier.rule(pattern=..., severity=...)`.

Each module is selectable by name in `error_detection.detectors`; its rules run in source order.
"""
