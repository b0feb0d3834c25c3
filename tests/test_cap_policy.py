import pytest

from waitroom.cap_policy import Admission, admit


@pytest.mark.parametrize(
    ("count", "limit", "expected"),
    [
        (0, 2, Admission.ALLOW),
        (1, 2, Admission.ALLOW),
        (2, 2, Admission.DENY),
        (3, 2, Admission.DENY),
        (0, 0, Admission.DENY),
    ],
)
def test_admit_denies_once_count_reaches_limit(count, limit, expected):
    assert admit(count, limit) is expected
