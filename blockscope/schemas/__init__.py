"""Canonical Pydantic schemas for serialized session reports."""

from .session_report_v1 import PassBlockV1, ResultBlockV1, SessionReportV1, report_to_dict

__all__ = ["PassBlockV1", "ResultBlockV1", "SessionReportV1", "report_to_dict"]
