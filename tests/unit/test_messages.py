"""Tests for hidden comment markers."""

from hive_queen import messages


class TestMarkers:
    def test_build_and_find(self):
        body = messages.with_marker("Vote here", messages.VOTING, issue=12, cycle=2)

        marker = messages.find_marker(body, messages.VOTING, issue=12)

        assert marker.int_attr("cycle") == 2
        assert body.endswith("Vote here")

    def test_attribute_mismatch(self):
        body = messages.with_marker("x", messages.NOTIFICATION, kind=messages.ISSUE_NEW_PR, issue=12, pr=31)

        assert messages.find_marker(body, messages.NOTIFICATION, pr=32) is None
        assert messages.find_marker(body, messages.LEADERBOARD) is None

    def test_kind_attribute_allowed(self):
        marker = messages.find_marker(
            messages.build_marker(messages.NOTIFICATION, kind=messages.VOTING_PASSED, issue=4),
            messages.NOTIFICATION,
            kind=messages.VOTING_PASSED,
        )

        assert marker.attrs == {"kind": "voting-passed", "issue": "4"}

    def test_multiple_markers(self):
        body = messages.build_marker(messages.VOTING, issue=1) + "\n" + messages.build_marker(messages.LEADERBOARD, issue=1)

        assert [m.kind for m in messages.parse_markers(body)] == ["voting", "leaderboard"]

    def test_no_body(self):
        assert messages.parse_markers(None) == []
        assert messages.find_marker("", messages.VOTING) is None

    def test_non_numeric_int_attr(self):
        marker = messages.Marker(kind="voting", attrs={"cycle": "x"})

        assert marker.int_attr("cycle") is None
        assert marker.int_attr("issue") is None


class TestTemplates:
    def test_voting_comment_carries_cycle(self):
        body = messages.voting_comment(messages.voting_start(), 7, 3)

        assert messages.find_marker(body, messages.VOTING, issue=7, cycle=3)

    def test_command_rejected_includes_reason(self):
        assert "already voting" in messages.command_rejected("already voting")
