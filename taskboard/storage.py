from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Iterator, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from . import config
from .db import Board, BoardList, BoardMember, Card, CardLabel, CardMember, Invitation, Label, User
from .errors import Conflict, Forbidden, Gone, NotFound, ValidationFailed
from .schemas import CardPosition, ListPosition
from .utils import as_utc, is_hex_color, new_uuid, now_utc, renumber, sha256_hex

logger = logging.getLogger(__name__)


class Storage:
    """Authorization-scoped reads and writes over a SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def _write(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # === Users ===

    def ensure_user(self, user_id: str) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            with self._write():
                user = User(id=user_id)
                self.session.add(user)
        return user

    def update_profile(self, user_id: str, name: str, email: str) -> User:
        email = email.strip().lower()
        taken = self.session.scalar(select(User).where(User.email == email, User.id != user_id))
        if taken is not None:
            raise Conflict("Email is already in use")
        user = self.ensure_user(user_id)
        with self._write():
            user.name = name.strip()
            user.email = email
        return user

    # === Access ===

    def _load_board(self, board_id: str) -> Board:
        board = self.session.get(Board, board_id)
        if board is None:
            raise NotFound("Board not found")
        return board

    def is_member(self, board: Board, user_id: str) -> bool:
        if board.owner_id == user_id:
            return True
        return any(m.user_id == user_id for m in board.members)

    def check_access(self, board: Board, user_id: str, owner_only: bool = False) -> None:
        if owner_only:
            if board.owner_id != user_id:
                raise Forbidden("Only the board owner can do this")
            return
        if not self.is_member(board, user_id):
            raise Forbidden("You do not have access to this board")

    def _load_list(self, list_id: str, user_id: str) -> BoardList:
        board_list = self.session.get(BoardList, list_id)
        if board_list is None:
            raise NotFound("List not found")
        self.check_access(board_list.board, user_id)
        return board_list

    def _load_card(self, card_id: str, user_id: str) -> Card:
        card = self.session.get(Card, card_id)
        if card is None:
            raise NotFound("Card not found")
        self.check_access(card.board_list.board, user_id)
        return card

    # === Boards ===

    def list_boards(self, user_id: str) -> list[Board]:
        member_of = select(BoardMember.board_id).where(BoardMember.user_id == user_id)
        stmt = (
            select(Board)
            .where(or_(Board.owner_id == user_id, Board.id.in_(member_of)))
            .order_by(Board.created_at.desc())
        )
        return list(self.session.scalars(stmt))

    def get_board(self, board_id: str, user_id: str) -> Board:
        board = self._load_board(board_id)
        self.check_access(board, user_id)
        return board

    def create_board(self, user_id: str, name: str, color: Optional[str], description: Optional[str]) -> Board:
        if color and not is_hex_color(color):
            raise ValidationFailed("Invalid color format. Use hex format (e.g., #0079BF)")
        self.ensure_user(user_id)
        with self._write():
            board = Board(
                id=new_uuid(),
                name=name.strip(),
                color=color or config.DEFAULT_BOARD_COLOR,
                description=(description or "").strip(),
                owner_id=user_id,
            )
            self.session.add(board)
        return board

    def update_board(self, board_id: str, user_id: str, changes: dict[str, Any]) -> Board:
        board = self._load_board(board_id)
        self.check_access(board, user_id, owner_only=True)
        color = changes.get("color")
        if color is not None and not is_hex_color(color):
            raise ValidationFailed("Invalid color format. Use hex format (e.g., #0079BF)")
        with self._write():
            if changes.get("name") is not None:
                board.name = changes["name"].strip()
            if color is not None:
                board.color = color
            if "description" in changes:
                board.description = (changes["description"] or "").strip()
        return board

    def delete_board(self, board_id: str, user_id: str) -> None:
        board = self._load_board(board_id)
        self.check_access(board, user_id, owner_only=True)
        with self._write():
            self.session.delete(board)

    # === Lists ===

    def create_list(self, board_id: str, user_id: str, title: str) -> BoardList:
        board = self.get_board(board_id, user_id)
        position = max((bl.position for bl in board.lists), default=-1) + 1
        with self._write():
            board_list = BoardList(id=new_uuid(), board_id=board.id, title=title.strip(), position=position)
            self.session.add(board_list)
        return board_list

    def update_list(self, list_id: str, user_id: str, title: str) -> BoardList:
        board_list = self._load_list(list_id, user_id)
        with self._write():
            board_list.title = title.strip()
        return board_list

    def delete_list(self, list_id: str, user_id: str) -> None:
        board_list = self._load_list(list_id, user_id)
        board = board_list.board
        with self._write():
            remaining = [bl for bl in sorted(board.lists, key=lambda bl: bl.position) if bl.id != list_id]
            self.session.delete(board_list)
            renumber(remaining)

    def reorder_lists(self, user_id: str, items: Sequence[ListPosition]) -> list[BoardList]:
        ids = self._unique_ids(items, "lists")
        rows = {bl.id: bl for bl in self.session.scalars(select(BoardList).where(BoardList.id.in_(ids)))}
        if len(rows) != len(ids):
            raise NotFound("Some lists not found")
        board_ids = {bl.board_id for bl in rows.values()}
        for board_id in board_ids:
            self.check_access(self._load_board(board_id), user_id)
        if len(board_ids) > 1:
            raise ValidationFailed("Lists must belong to a single board")

        with self._write():
            for item in items:
                rows[item.id].position = item.position
        logger.info("Reordered %d lists on board %s", len(ids), next(iter(board_ids)))
        return [rows[i] for i in ids]

    # === Cards ===

    def create_card(
        self,
        list_id: str,
        user_id: str,
        title: str,
        description: Optional[str],
        due_date: Optional[datetime],
    ) -> Card:
        board_list = self._load_list(list_id, user_id)
        position = max((c.position for c in board_list.cards), default=-1) + 1
        with self._write():
            card = Card(
                id=new_uuid(),
                list_id=board_list.id,
                title=title.strip(),
                description=description.strip() if description else None,
                due_date=due_date,
                position=position,
            )
            self.session.add(card)
        return card

    def update_card(self, card_id: str, user_id: str, changes: dict[str, Any]) -> Card:
        card = self._load_card(card_id, user_id)
        with self._write():
            if changes.get("title") is not None:
                card.title = changes["title"].strip()
            if "description" in changes:
                description = changes["description"]
                card.description = description.strip() if description else None
            if "dueDate" in changes:
                card.due_date = changes["dueDate"]
        return card

    def delete_card(self, card_id: str, user_id: str) -> None:
        card = self._load_card(card_id, user_id)
        board_list = card.board_list
        with self._write():
            remaining = [c for c in sorted(board_list.cards, key=lambda c: c.position) if c.id != card_id]
            self.session.delete(card)
            renumber(remaining)

    def reorder_cards(self, user_id: str, items: Sequence[CardPosition]) -> list[Card]:
        """Apply a batch of card positions (and optional list moves) atomically."""
        ids = self._unique_ids(items, "cards")
        rows = {c.id: c for c in self.session.scalars(select(Card).where(Card.id.in_(ids)))}
        if len(rows) != len(ids):
            raise NotFound("Some cards not found")

        board_ids = {c.board_list.board_id for c in rows.values()}
        for board_id in board_ids:
            self.check_access(self._load_board(board_id), user_id)
        if len(board_ids) > 1:
            raise ValidationFailed("Cards must belong to a single board")
        board_id = next(iter(board_ids))

        self._check_targets(board_id, {item.listId for item in items if item.listId})

        with self._write():
            for item in items:
                card = rows[item.id]
                card.position = item.position
                if item.listId:
                    card.list_id = item.listId
        logger.info("Reordered %d cards on board %s", len(ids), board_id)
        return [rows[i] for i in ids]

    def _check_targets(self, board_id: str, target_ids: set[str]) -> dict[str, BoardList]:
        if not target_ids:
            return {}
        targets = {bl.id: bl for bl in self.session.scalars(select(BoardList).where(BoardList.id.in_(target_ids)))}
        missing = target_ids - set(targets)
        if missing:
            raise NotFound("Target list not found", {"listIds": sorted(missing)})
        if any(bl.board_id != board_id for bl in targets.values()):
            raise ValidationFailed("Cannot move card to a different board")
        return targets

    def move_card(self, card_id: str, user_id: str, list_id: Optional[str], position: Optional[int]) -> Card:
        """Move one card within its list or to another list on the same board.

        Both affected lists are renumbered densely; ``position`` is clamped to
        the destination list and defaults to its end.
        """
        card = self._load_card(card_id, user_id)
        source = card.board_list
        dest = source
        if list_id and list_id != source.id:
            dest = self._check_targets(source.board_id, {list_id})[list_id]

        source_cards = [c for c in sorted(source.cards, key=lambda c: c.position) if c.id != card.id]
        dest_cards = source_cards if dest is source else sorted(dest.cards, key=lambda c: c.position)
        index = len(dest_cards) if position is None else min(position, len(dest_cards))
        with self._write():
            dest_cards.insert(index, card)
            card.list_id = dest.id
            if dest is not source:
                renumber(source_cards)
            renumber(dest_cards)
        logger.info("Moved card %s to list %s at %d", card.id, dest.id, card.position)
        return card

    @staticmethod
    def _unique_ids(items: Sequence[Any], kind: str) -> list[str]:
        if not items:
            raise ValidationFailed(f"{kind.capitalize()} array is required")
        ids = [item.id for item in items]
        if len(set(ids)) != len(ids):
            raise ValidationFailed(f"Duplicate ids in {kind} array")
        return ids

    # === Labels ===

    def list_labels(self, board_id: str, user_id: str) -> list[Label]:
        board = self.get_board(board_id, user_id)
        return sorted(board.labels, key=lambda label: label.name)

    def create_label(self, board_id: str, user_id: str, name: str, color: str) -> Label:
        board = self._load_board(board_id)
        self.check_access(board, user_id, owner_only=True)
        if not is_hex_color(color):
            raise ValidationFailed("Invalid color format. Use hex format (e.g., #FF5733)")
        with self._write():
            label = Label(id=new_uuid(), board_id=board.id, name=name.strip(), color=color)
            self.session.add(label)
        return label

    def _load_label(self, board_id: str, label_id: str) -> Label:
        label = self.session.get(Label, label_id)
        if label is None or label.board_id != board_id:
            raise NotFound("Label not found")
        return label

    def update_label(self, board_id: str, label_id: str, user_id: str, changes: dict[str, Any]) -> Label:
        board = self._load_board(board_id)
        self.check_access(board, user_id, owner_only=True)
        label = self._load_label(board_id, label_id)
        color = changes.get("color")
        if color is not None and not is_hex_color(color):
            raise ValidationFailed("Invalid color format. Use hex format (e.g., #FF5733)")
        with self._write():
            if changes.get("name") is not None:
                label.name = changes["name"].strip()
            if color is not None:
                label.color = color
        return label

    def delete_label(self, board_id: str, label_id: str, user_id: str) -> None:
        board = self._load_board(board_id)
        self.check_access(board, user_id, owner_only=True)
        label = self._load_label(board_id, label_id)
        with self._write():
            for link in self.session.scalars(select(CardLabel).where(CardLabel.label_id == label_id)):
                self.session.delete(link)
            self.session.delete(label)

    def add_card_label(self, card_id: str, label_id: str, user_id: str) -> Card:
        card = self._load_card(card_id, user_id)
        self._load_label(card.board_list.board_id, label_id)
        if any(link.label_id == label_id for link in card.labels):
            raise Conflict("Label already added to card")
        with self._write():
            card.labels.append(CardLabel(card_id=card.id, label_id=label_id))
        return card

    def remove_card_label(self, card_id: str, label_id: str, user_id: str) -> Card:
        card = self._load_card(card_id, user_id)
        link = next((link for link in card.labels if link.label_id == label_id), None)
        if link is None:
            raise NotFound("Label not found on card")
        with self._write():
            card.labels.remove(link)
        return card

    # === Card members ===

    def add_card_member(self, card_id: str, member_id: str, user_id: str) -> Card:
        card = self._load_card(card_id, user_id)
        if not self.is_member(card.board_list.board, member_id):
            raise ValidationFailed("User is not a member of this board")
        if any(m.user_id == member_id for m in card.members):
            raise Conflict("User already assigned to card")
        with self._write():
            card.members.append(CardMember(card_id=card.id, user_id=member_id))
        return card

    def remove_card_member(self, card_id: str, member_id: str, user_id: str) -> Card:
        card = self._load_card(card_id, user_id)
        link = next((m for m in card.members if m.user_id == member_id), None)
        if link is None:
            raise NotFound("User not assigned to card")
        with self._write():
            card.members.remove(link)
        return card

    # === Invitations ===

    def invite(self, board_id: str, user_id: str, email: str) -> tuple[Invitation, str]:
        """Create a pending invitation. The raw token is only returned here."""
        board = self._load_board(board_id)
        self.check_access(board, user_id, owner_only=True)
        email = email.strip().lower()
        pending = self.session.scalar(
            select(Invitation).where(
                Invitation.board_id == board_id,
                Invitation.email == email,
                Invitation.status == "pending",
            )
        )
        if pending is not None:
            raise Conflict("Invitation already sent to this email")
        token = new_uuid()
        with self._write():
            invitation = Invitation(
                id=new_uuid(),
                board_id=board.id,
                email=email,
                sender_id=user_id,
                status="pending",
                token_hash=sha256_hex(token),
                expires_at=now_utc() + timedelta(days=config.INVITATION_TTL_DAYS),
            )
            self.session.add(invitation)
        return invitation, token

    def list_invitations(self, board_id: str, user_id: str) -> list[Invitation]:
        board = self._load_board(board_id)
        self.check_access(board, user_id, owner_only=True)
        return sorted(board.invitations, key=lambda inv: inv.created_at, reverse=True)

    def get_invitation(self, token: str) -> Invitation:
        invitation = self.session.scalar(select(Invitation).where(Invitation.token_hash == sha256_hex(token)))
        if invitation is None:
            raise NotFound("Invitation not found")
        if as_utc(invitation.expires_at) < now_utc():
            raise Gone("Invitation has expired")
        if invitation.status != "pending":
            raise ValidationFailed("Invitation has already been used")
        return invitation

    def accept_invitation(self, token: str, user_id: str) -> Board:
        invitation = self.get_invitation(token)
        user = self.ensure_user(user_id)
        if not user.email or user.email != invitation.email:
            raise Forbidden("This invitation was sent to a different email address")
        board = invitation.board
        with self._write():
            invitation.status = "accepted"
            if not self.is_member(board, user_id):
                board.members.append(BoardMember(board_id=board.id, user_id=user_id))
        return board
