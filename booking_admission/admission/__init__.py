from booking_admission.admission.capacity import CapacityLedgerReader
from booking_admission.admission.controller import AdmissionController
from booking_admission.admission.dedup import DeduplicationWindow
from booking_admission.admission.policy import evaluate, policy_window
from booking_admission.admission.status_gate import (
    IllegalTransitionError,
    StatusTransitionGate,
)

__all__ = [
    "AdmissionController",
    "CapacityLedgerReader",
    "DeduplicationWindow",
    "StatusTransitionGate",
    "IllegalTransitionError",
    "evaluate",
    "policy_window",
]
