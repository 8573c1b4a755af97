import re

from timing import remaining_wait, stamp


class TestRemainingWait:

    def test_no_overlap_waits_full_duration(self):
        assert remaining_wait(10, 3, overlapped=False) == 10

    def test_overlap_counts_toward_duration(self):
        assert remaining_wait(10, 3, overlapped=True) == 7

    def test_overlap_longer_than_entry_clamps_to_zero(self):
        assert remaining_wait(2, 3, overlapped=True) == 0
        assert remaining_wait(3, 3, overlapped=True) == 0


def test_stamp_format():
    assert re.match(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$", stamp())
    assert stamp(0).count(":") == 2
