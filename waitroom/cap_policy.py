import enum


class Admission(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


def admit(patient_message_count: int, limit: int) -> Admission:
    """Gate a new patient message against the conversation's message cap.

    The count must come from the transcript store at decision time. Reaching
    the limit denies; there is no partial admission.
    """
    if patient_message_count >= limit:
        return Admission.DENY
    return Admission.ALLOW


__all__ = ["Admission", "admit"]
