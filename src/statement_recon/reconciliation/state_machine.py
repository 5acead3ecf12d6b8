"""
Reconciliation state machine for statement lines.

    unmatched --AUTO_SUGGEST--> suggested
    unmatched --AUTO_MATCH--> matched
    unmatched, suggested --MANUAL_LINK--> matched
    suggested --CONFIRM--> matched
    unmatched --RECORD--> recorded
    suggested --REJECT--> unmatched
    matched, recorded --UNLINK--> unmatched

A line carries a matched reference exactly while it is matched or
recorded; a suggested line keeps its candidate in the suggestion slot.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
import logging

from ..models.reconciliation import CandidateRef, ReconciliationStatus, StatementLine
from ..utils.exceptions import DeleteBlocked, InvalidTransition

logger = logging.getLogger(__name__)

UNMATCHED = ReconciliationStatus.UNMATCHED
SUGGESTED = ReconciliationStatus.SUGGESTED
MATCHED = ReconciliationStatus.MATCHED
RECORDED = ReconciliationStatus.RECORDED


class Action(Enum):
    AUTO_SUGGEST = "auto_suggest"
    AUTO_MATCH = "auto_match"
    MANUAL_LINK = "link"
    CONFIRM = "confirm"
    RECORD = "record"
    REJECT = "reject"
    UNLINK = "unlink"


# action -> (allowed source states, target state)
TRANSITIONS: dict[Action, tuple[frozenset, ReconciliationStatus]] = {
    Action.AUTO_SUGGEST: (frozenset({UNMATCHED}), SUGGESTED),
    Action.AUTO_MATCH: (frozenset({UNMATCHED}), MATCHED),
    Action.MANUAL_LINK: (frozenset({UNMATCHED, SUGGESTED}), MATCHED),
    Action.CONFIRM: (frozenset({SUGGESTED}), MATCHED),
    Action.RECORD: (frozenset({UNMATCHED}), RECORDED),
    Action.REJECT: (frozenset({SUGGESTED}), UNMATCHED),
    Action.UNLINK: (frozenset({MATCHED, RECORDED}), UNMATCHED),
}

# Remedy shown when an action is attempted from a state that forbids it
REMEDIES: dict[ReconciliationStatus, str] = {
    UNMATCHED: "it has no match yet; run auto-match or link a record",
    SUGGESTED: "confirm or reject the suggestion first",
    MATCHED: "unlink it first",
    RECORDED: "unlink it first",
}


def remedy_for(action: Action, status: ReconciliationStatus) -> str:
    if action in (Action.CONFIRM, Action.REJECT) and status in (MATCHED, RECORDED):
        return "it is already reconciled; unlink it to undo the match"
    if action is Action.UNLINK and status is SUGGESTED:
        return "reject the suggestion instead"
    return REMEDIES[status]


class ReconciliationStateMachine:
    """
    Applies reconciliation actions to statement lines.

    Lines are mutated in place; persisting them is the caller's job.
    """

    def can_apply(self, line: StatementLine, action: Action) -> bool:
        sources, _ = TRANSITIONS[action]
        return line.status in sources

    def apply(
        self,
        line: StatementLine,
        action: Action,
        candidate: Optional[CandidateRef] = None,
        confidence: Optional[int] = None,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> StatementLine:
        """
        Move a line to the state the action leads to.

        Args:
            line: Line to update
            action: Reconciliation action
            candidate: Record to link or suggest (required for suggest, match, link, record)
            confidence: Match confidence in percent
            notes: Free-text note stored on the line
            actor: Who performed the action

        Returns:
            The updated line

        Raises:
            InvalidTransition: If the action is not allowed from the line's state
        """
        sources, target = TRANSITIONS[action]
        if line.status not in sources:
            raise InvalidTransition(
                f"Cannot {action.value.replace('_', ' ')} line {line.id} while it is "
                f"{line.status.value}: {remedy_for(action, line.status)}"
            )

        previous = line.status

        if action is Action.AUTO_SUGGEST:
            self._require(candidate, action)
            line.suggested = candidate
            line.matched = None
            line.match_confidence = confidence
            line.notes = notes

        elif action in (Action.AUTO_MATCH, Action.MANUAL_LINK, Action.RECORD):
            self._require(candidate, action)
            self._link(line, candidate, confidence, notes, actor)

        elif action is Action.CONFIRM:
            self._link(line, line.suggested, line.match_confidence, notes or line.notes, actor)

        elif action is Action.REJECT:
            line.suggested = None
            line.match_confidence = None
            line.notes = None

        elif action is Action.UNLINK:
            line.matched = None
            line.suggested = None
            line.match_confidence = None
            line.notes = None
            line.matched_at = None
            line.matched_by = None

        line.status = target
        logger.debug(f"Line {line.id}: {previous.value} -> {target.value} ({action.value})")
        return line

    @staticmethod
    def _require(candidate: Optional[CandidateRef], action: Action) -> None:
        if candidate is None:
            raise InvalidTransition(f"Action '{action.value}' needs an accounting record to link")

    @staticmethod
    def _link(
        line: StatementLine,
        candidate: Optional[CandidateRef],
        confidence: Optional[int],
        notes: Optional[str],
        actor: Optional[str],
    ) -> None:
        if candidate is None:
            raise InvalidTransition(f"Line {line.id} has no suggested record to confirm")
        line.matched = candidate
        line.suggested = None
        line.match_confidence = confidence
        line.notes = notes
        line.matched_at = datetime.now()
        line.matched_by = actor

    # -- guards -----------------------------------------------------------

    def ensure_deletable(self, line: StatementLine) -> None:
        """
        Raises:
            DeleteBlocked: Unless the line is unmatched
        """
        if line.status is not UNMATCHED:
            raise DeleteBlocked(
                f"Line {line.id} is {line.status.value} and cannot be deleted: "
                f"{REMEDIES[line.status]}"
            )

    def ensure_amount_editable(self, line: StatementLine) -> None:
        """
        Raises:
            InvalidTransition: If the line is matched or recorded
        """
        if line.status.is_resolved:
            raise InvalidTransition(
                f"Cannot change the amount of line {line.id} while it is "
                f"{line.status.value}: unlink it first"
            )
