"""Abuse-resistant access gate for the video catalog."""

from videogate.domain.gate.service import Admission, RequestGate

__all__ = ["Admission", "RequestGate"]
