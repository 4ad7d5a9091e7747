"""End-to-end reconciliation tests against in-memory fakes."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from forge_fakes import (
    AUTHOR,
    BASE,
    BOT,
    COMMITTER,
    HEAD,
    OUTSIDER,
    REVIEWER,
    FakeCensus,
    FakeForge,
    FakeVersionControl,
    make_check,
    make_comment,
    make_proposal,
    make_review,
)
from prflow_core.config import DEFAULT_CONFIG
from prflow_core.engine import Engine, ReconcileResult, reconcile
from prflow_core.errors import FatalError, TransientError
from prflow_core.guard import CONFLICT, READY, marker
from prflow_core.integration import NOT_REQUESTED
from prflow_core.models import CheckStatus, Role
from prflow_core.policy import ONLY_AUTHOR

CONTRIBUTOR_ADD = "/contributor add Jane Doe <jane@x.com>"
CO_AUTHOR = "Co-authored-by: Jane Doe <jane@x.com>"

COMMITTER_AUTHOR = {
    AUTHOR: {Role.AUTHOR, Role.COMMITTER},
    COMMITTER: {Role.AUTHOR, Role.COMMITTER},
    REVIEWER: {Role.AUTHOR, Role.COMMITTER, Role.REVIEWER},
}


def _reconcile(forge, vcs=None, census=None, dry_run=False, **config):
    cfg = {**DEFAULT_CONFIG, **config}
    return reconcile(
        forge,
        vcs or FakeVersionControl(),
        census or FakeCensus(),
        forge.proposal,
        cfg,
        dry_run=dry_run,
    )


def _posts(forge):
    return [call[1] for call in forge.calls if call[0] == "post_comment"]


class TestScenarios:
    def test_contributor_then_committer_approval_is_ready(self):
        forge = FakeForge(
            make_proposal(),
            comments=[make_comment(1, AUTHOR, CONTRIBUTOR_ADD)],
            reviews=[make_review(COMMITTER, minute=2)],
        )

        result = _reconcile(forge)

        assert result.error is None
        assert result.decision.approved
        assert result.decision.blockers == (NOT_REQUESTED,)
        message = result.state.ready_commit_message
        assert message is not None
        assert message.splitlines().count(CO_AUTHOR) == 1
        ready_posts = [body for body in _posts(forge) if "prflow-ready" in body]
        assert len(ready_posts) == 1
        assert message in ready_posts[0]
        assert ("add_label", "ready") in forge.calls

    def test_outsider_cannot_add_contributor(self):
        forge = FakeForge(make_proposal(), comments=[make_comment(1, OUTSIDER, CONTRIBUTOR_ADD)])

        result = _reconcile(forge)

        assert result.state.contributors == ()
        (error,) = result.state.command_errors
        assert error.kind == "authorization"
        assert [c for c in forge.calls if c[0] != "create_check"] == [("post_comment", forge.bot_comments()[0].body)]
        assert ONLY_AUTHOR in forge.bot_comments()[0].body

    def test_check_completion_alone_makes_change_ready(self):
        forge = FakeForge(
            make_proposal(),
            comments=[make_comment(1, AUTHOR, "/integrate")],
            reviews=[make_review(REVIEWER)],
            checks={"build": make_check("build", CheckStatus.IN_PROGRESS)},
        )
        vcs = FakeVersionControl()
        census = FakeCensus(COMMITTER_AUTHOR)

        first = _reconcile(forge, vcs, census, required_checks=["build"])
        assert not first.decision.ready
        assert "Check `build` is still in progress." in first.decision.blockers
        assert vcs.created == []

        forge.checks["build"] = make_check("build", CheckStatus.SUCCESS, minute=3)
        user_comments = [c for c in forge.comments if c.author != BOT]

        second = _reconcile(forge, vcs, census, required_checks=["build"])
        assert second.integrated_as is not None
        assert vcs.refs["main"] == second.integrated_as
        assert [c for c in forge.comments if c.author != BOT] == user_comments

    def test_conflict_reported_at_most_once(self):
        forge = FakeForge(
            make_proposal(),
            comments=[make_comment(1, AUTHOR, "/integrate")],
            reviews=[make_review(REVIEWER)],
        )
        vcs = FakeVersionControl()
        census = FakeCensus(COMMITTER_AUTHOR)

        def target_moves(v):
            v.add_commit("o" * 40, "tree-other", BASE)
            v.refs["main"] = "o" * 40
            v.before_push = None

        vcs.before_push = target_moves

        first = _reconcile(forge, vcs, census)
        assert first.integrated_as is None
        assert first.decision.record is None
        conflicts = [c for c in forge.bot_comments() if "must be rebased" in c.body]
        assert len(conflicts) == 1
        assert marker(CONFLICT, f"{HEAD}:{'o' * 40}") in conflicts[0].body

        second = _reconcile(forge, vcs, census)
        assert second.decision.record is None
        assert len([c for c in forge.bot_comments() if "must be rebased" in c.body]) == 1
        assert len(vcs.created) == 1

    def test_target_moved_without_conflict_is_merged(self):
        forge = FakeForge(
            make_proposal(),
            comments=[make_comment(1, AUTHOR, "/integrate")],
            reviews=[make_review(REVIEWER)],
        )
        vcs = FakeVersionControl()
        vcs.add_commit("o" * 40, "tree-other", BASE)
        vcs.refs["main"] = "o" * 40

        result = _reconcile(forge, vcs, FakeCensus(COMMITTER_AUTHOR))

        assert result.integrated_as == vcs.refs["main"]
        assert vcs.commits[result.integrated_as] == ("tree-other+tree-head", "o" * 40)
        assert not any("must be rebased" in body for body in _posts(forge))


class TestFullFlow:
    def _forge(self, **kw):
        return FakeForge(
            make_proposal(title="ABC-12: Fix frobnicator overflow"),
            comments=[
                make_comment(1, AUTHOR, CONTRIBUTOR_ADD, minute=1),
                make_comment(2, AUTHOR, "/integrate", minute=2),
                make_comment(3, COMMITTER, "/sponsor", minute=3),
            ],
            reviews=[make_review(COMMITTER, minute=4)],
            checks={"build": make_check("build")},
            **kw,
        )

    def test_integrates_labels_and_closes(self):
        forge, vcs = self._forge(), FakeVersionControl()

        result = _reconcile(forge, vcs)

        assert result.error is None
        assert result.integrated_as == vcs.refs["main"]
        message = vcs.created[0][1]
        assert message.startswith("ABC-12: Fix frobnicator overflow\n\n")
        assert "Refs:" not in message  # ABC-12 is already the issue line
        assert message.endswith(CO_AUTHOR)
        assert ("add_label", "integrated") in forge.calls
        assert forge.calls[-1] == ("close_proposal",)
        assert not forge.proposal.is_open
        # Replies to the three commands plus the record; no ready preview once integrated.
        assert len(_posts(forge)) == 4
        assert not any("prflow-ready" in body for body in _posts(forge))

    def test_keeps_proposal_open_when_configured(self):
        forge = self._forge()
        _reconcile(forge, close_after_integration=False)
        assert ("close_proposal",) not in forge.calls
        assert forge.proposal.is_open

    def test_replies_quote_command_and_address_actor(self):
        forge = self._forge()
        _reconcile(forge)
        first = forge.bot_comments()[0].body
        assert first.startswith(f"> {CONTRIBUTOR_ADD}\n\n@{AUTHOR} ")
        assert "<!-- prflow-reply: 1:" in first

    def test_replies_follow_the_conversation_order(self):
        forge = FakeForge(
            make_proposal(),
            comments=[make_comment(1, OUTSIDER, "/help", minute=1), make_comment(2, AUTHOR, "/help", minute=2)],
        )

        result = _reconcile(forge)

        assert [o.author for o in result.state.outcomes] == [AUTHOR, OUTSIDER]
        replies = [body for body in _posts(forge) if "prflow-reply" in body]
        assert replies[0].startswith(f"> /help\n\n@{OUTSIDER} ")
        assert replies[1].startswith(f"> /help\n\n@{AUTHOR} ")

    def test_dry_run_changes_nothing(self):
        forge, vcs = self._forge(), FakeVersionControl()

        result = _reconcile(forge, vcs, dry_run=True)

        assert forge.calls == []
        assert vcs.created == []
        assert result.actions
        assert f"push {HEAD[:7]} onto main" in result.actions
        assert result.integrated_as is None


class TestIdempotence:
    def _busy_forge(self):
        return FakeForge(
            make_proposal(),
            comments=[
                make_comment(1, AUTHOR, CONTRIBUTOR_ADD),
                make_comment(2, AUTHOR, "/reviewers many"),
                make_comment(3, OUTSIDER, "/integrate"),
                make_comment(4, AUTHOR, "/integrate"),
                make_comment(5, AUTHOR, "Thanks all!"),
            ],
            reviews=[make_review(COMMITTER)],
        )

    def test_second_run_makes_no_calls(self):
        forge = self._busy_forge()
        _reconcile(forge)
        made = len(forge.calls)
        assert made > 0

        again = _reconcile(forge)

        assert forge.calls[made:] == []
        assert again.actions == []

    def test_second_run_after_integration_makes_no_calls(self):
        forge = TestFullFlow()._forge()
        vcs = FakeVersionControl()
        _reconcile(forge, vcs)
        made = len(forge.calls)

        again = _reconcile(forge, vcs)

        assert forge.calls[made:] == []
        assert again.decision.record is not None
        assert len(vcs.created) == 1

    def test_labels_follow_state(self):
        forge = self._busy_forge()
        _reconcile(forge)
        assert sorted(forge.labels) == ["ready", "sponsor"]

        forge.comments.append(make_comment(9, COMMITTER, "/sponsor", minute=9))
        _reconcile(forge)
        assert "sponsor" not in forge.labels
        assert "integrated" in forge.labels
        assert "ready" not in forge.labels

    def test_edited_command_is_answered_again(self):
        forge = FakeForge(make_proposal(), comments=[make_comment(1, AUTHOR, "/reviewers 2")])
        _reconcile(forge)
        forge.comments[0] = replace(forge.comments[0], body="/reviewers 3")
        _reconcile(forge)
        replies = [body for body in _posts(forge) if "prflow-reply" in body]
        assert len(replies) == 2
        assert "at least 3" in replies[1]

    def test_ready_preview_edited_when_message_changes(self):
        forge = FakeForge(make_proposal(), reviews=[make_review(COMMITTER)])
        _reconcile(forge)
        forge.comments.append(make_comment(9, AUTHOR, CONTRIBUTOR_ADD, minute=9))
        _reconcile(forge)

        previews = [c for c in forge.bot_comments() if f"prflow-{READY}" in c.body]
        assert len(previews) == 1
        assert CO_AUTHOR in previews[0].body
        assert len([body for body in _posts(forge) if f"prflow-{READY}" in body]) == 1
        assert [c[0] for c in forge.calls].count("update_comment") == 1

        _reconcile(forge)
        assert [c[0] for c in forge.calls].count("update_comment") == 1


def _check_calls(forge):
    return [c for c in forge.calls if c[0] in ("create_check", "update_check")]


class TestCheckRun:
    def test_blocked_change_reports_in_progress(self):
        forge = FakeForge(make_proposal())

        _reconcile(forge)

        ((_, name, status, title, summary),) = _check_calls(forge)
        assert (name, status) == ("prflow", CheckStatus.IN_PROGRESS)
        assert title == "2 blocker(s)"
        assert "- Change must be approved by at least 1 Committer(s) (0 so far)." in summary
        assert f"- {NOT_REQUESTED}" in summary

    def test_approved_change_reports_success_with_message(self):
        forge = FakeForge(make_proposal(), reviews=[make_review(COMMITTER)])

        result = _reconcile(forge)

        ((_, _, status, title, summary),) = _check_calls(forge)
        assert status == CheckStatus.SUCCESS
        assert title == "Approved"
        assert result.state.commit_message in summary

    def test_report_updated_in_place_and_only_when_it_changes(self):
        forge = FakeForge(make_proposal())
        _reconcile(forge)
        _reconcile(forge)
        assert len(_check_calls(forge)) == 1

        forge.reviews.append(make_review(COMMITTER, minute=5))
        _reconcile(forge)

        first, second = _check_calls(forge)
        assert first[0] == "create_check"
        assert second[0] == "update_check"
        assert second[1] == forge.checks["prflow"].id
        assert forge.checks["prflow"].status == CheckStatus.SUCCESS

    def test_own_pending_check_does_not_block(self):
        forge = FakeForge(
            make_proposal(),
            reviews=[make_review(COMMITTER)],
            checks={"prflow": make_check("prflow", CheckStatus.IN_PROGRESS, id="run-0")},
        )

        result = _reconcile(forge)

        assert result.decision.approved
        assert result.state.ready_commit_message is not None

    def test_integrated_change_reports_the_commit(self):
        forge, vcs = TestFullFlow()._forge(), FakeVersionControl()

        result = _reconcile(forge, vcs)

        ((_, _, status, title, summary),) = _check_calls(forge)
        assert (status, title) == (CheckStatus.SUCCESS, "Integrated")
        assert summary == f"Pushed as commit {result.integrated_as}."

    def test_disabled(self):
        forge = FakeForge(make_proposal())
        _reconcile(forge, check_name="")
        assert _check_calls(forge) == []


class TestRecovery:
    def test_lost_record_is_written_without_second_push(self):
        forge = TestFullFlow()._forge()
        vcs = FakeVersionControl()
        vcs.add_commit("p" * 40, "tree-head", BASE)
        vcs.refs["main"] = "p" * 40

        result = _reconcile(forge, vcs)

        assert result.integrated_as == "p" * 40
        assert vcs.created == []
        assert any(f"Pushed as commit {'p' * 40}." in body for body in _posts(forge))


class TestErrors:
    def test_transient_error_is_retried_silently(self):
        forge = FakeForge(make_proposal(), comments=[make_comment(1, AUTHOR, "/help")])
        forge.read_error = TransientError("GitHub API error 502: Bad Gateway")

        result = _reconcile(forge)

        assert result.error == "GitHub API error 502: Bad Gateway"
        assert forge.calls == []
        assert result.actions == []

    def test_fatal_census_error_leaves_proposal_untouched(self, mocker):
        forge = FakeForge(make_proposal(), comments=[make_comment(1, AUTHOR, "/help")])
        census = FakeCensus()
        mocker.patch.object(census, "roles_of", side_effect=FatalError("Project 'x' is not in the census."))

        result = _reconcile(forge, census=census)

        assert "not in the census" in result.error
        assert forge.calls == []

    def test_transient_push_failure_leaves_no_record(self, mocker):
        forge, vcs = TestFullFlow()._forge(), FakeVersionControl()
        mocker.patch.object(vcs, "push", side_effect=TransientError("timeout"))

        result = _reconcile(forge, vcs)

        assert result.error == "timeout"
        assert result.integrated_as is None
        assert not any("Pushed as commit" in body for body in _posts(forge))


def _engine(forge, **config):
    return Engine(forge, FakeVersionControl(), FakeCensus(), {**DEFAULT_CONFIG, **config})


class TestEngine:
    def test_run_once_reconciles_open_proposals(self):
        forge = TestFullFlow()._forge()
        engine = Engine(forge, FakeVersionControl(), FakeCensus(), dict(DEFAULT_CONFIG))

        (result,) = engine.run_once()

        assert result.integrated_as is not None

    def test_target_branch_filter(self, mocker):
        forge = MagicMock()
        forge.current_user.return_value = BOT
        forge.open_proposals.return_value = [make_proposal(id="1"), make_proposal(id="2", target_ref="dev")]
        mock_reconcile = mocker.patch(
            "prflow_core.engine.reconcile",
            side_effect=lambda forge, vcs, census, p, config, **kw: ReconcileResult(proposal_id=p.id),
        )

        results = _engine(forge, target_branches=["main"]).run_once()

        assert [r.proposal_id for r in results] == ["1"]
        mock_reconcile.assert_called_once()
        assert mock_reconcile.call_args.kwargs["bot_user"] == BOT

    def test_one_failure_does_not_stop_the_others(self, mocker):
        forge = MagicMock()
        forge.current_user.return_value = BOT
        forge.open_proposals.return_value = [make_proposal(id="1"), make_proposal(id="2")]

        def fake_reconcile(forge, vcs, census, proposal, config, **kw):
            if proposal.id == "1":
                raise RuntimeError("boom")
            return ReconcileResult(proposal_id=proposal.id)

        mocker.patch("prflow_core.engine.reconcile", side_effect=fake_reconcile)

        results = _engine(forge, workers=2).run_once()

        assert [r.proposal_id for r in results] == ["1", "2"]
        assert results[0].error == "RuntimeError: boom"
        assert results[1].error is None

    def test_listing_failure_skips_the_cycle(self):
        forge = MagicMock()
        forge.open_proposals.side_effect = TransientError("rate limited")
        assert _engine(forge).run_once() == []

    def test_run_once_flag(self, mocker):
        engine = _engine(MagicMock())
        run_once = mocker.patch.object(engine, "run_once", return_value=[])
        sleep = mocker.patch("prflow_core.engine.time.sleep")

        engine.run(once=True, dry_run=True)

        run_once.assert_called_once_with(dry_run=True)
        sleep.assert_not_called()

    def test_run_polls_until_interrupted(self, mocker):
        engine = _engine(MagicMock(), poll_interval=30)
        run_once = mocker.patch.object(engine, "run_once", return_value=[])
        sleep = mocker.patch("prflow_core.engine.time.sleep", side_effect=[None, KeyboardInterrupt])

        with pytest.raises(KeyboardInterrupt):
            engine.run()

        assert run_once.call_count == 2
        assert 0 < sleep.call_args_list[0].args[0] <= 30
