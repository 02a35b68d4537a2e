import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from . import config
from .auth import get_current_user, get_storage
from .db import Board, BoardList, Card, Invitation, Label, User, init_db
from .errors import TaskboardError
from .schemas import (
    BoardDetail,
    BoardIn,
    BoardOut,
    BoardPatch,
    BoardsPage,
    BoardSnapshot,
    CardIn,
    CardMove,
    CardOut,
    CardPatch,
    CardsPage,
    CardsReorder,
    ErrorEnvelope,
    Health,
    InvitationIn,
    InvitationOut,
    InvitationsPage,
    LabelIn,
    LabelOut,
    LabelPatch,
    ListIn,
    ListOut,
    ListsPage,
    ListsReorder,
    ProfileIn,
    UserSummary,
    Version,
)
from .storage import Storage
from .utils import new_uuid

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Taskboard API", version=config.VERSION, lifespan=lifespan)


@app.exception_handler(TaskboardError)
async def taskboard_error_handler(request: Request, exc: TaskboardError) -> JSONResponse:
    envelope = ErrorEnvelope(code=exc.code, message=exc.message, details=exc.details, requestId=new_uuid())
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": envelope.model_dump()})


# === Helpers ===


def user_summary(user: User) -> UserSummary:
    return UserSummary(id=user.id, name=user.name, email=user.email)


def label_out(label: Label) -> LabelOut:
    return LabelOut(id=label.id, boardId=label.board_id, name=label.name, color=label.color)


def card_out(card: Card) -> CardOut:
    return CardOut(
        id=card.id,
        listId=card.list_id,
        title=card.title,
        description=card.description,
        dueDate=card.due_date,
        position=card.position,
        labels=[label_out(link.label) for link in card.labels],
        members=[user_summary(link.user) for link in card.members],
        createdAt=card.created_at,
        updatedAt=card.updated_at,
    )


def list_out(board_list: BoardList, with_cards: bool = True) -> ListOut:
    cards = sorted(board_list.cards, key=lambda c: (c.position, c.created_at, c.id)) if with_cards else []
    return ListOut(
        id=board_list.id,
        boardId=board_list.board_id,
        title=board_list.title,
        position=board_list.position,
        cards=[card_out(c) for c in cards],
    )


def board_out(board: Board) -> BoardOut:
    return BoardOut(
        id=board.id,
        name=board.name,
        color=board.color,
        description=board.description,
        ownerId=board.owner_id,
        createdAt=board.created_at,
        updatedAt=board.updated_at,
        listsCount=len(board.lists),
    )


def board_detail(board: Board, owner: User) -> BoardDetail:
    lists = sorted(board.lists, key=lambda bl: (bl.position, bl.created_at, bl.id))
    return BoardDetail(
        **board_out(board).model_dump(),
        lists=[list_out(bl) for bl in lists],
        labels=[label_out(label) for label in sorted(board.labels, key=lambda label: label.name)],
        owner=user_summary(owner),
    )


def invitation_out(invitation: Invitation, token: str | None = None) -> InvitationOut:
    return InvitationOut(
        id=invitation.id,
        boardId=invitation.board_id,
        boardName=invitation.board.name,
        email=invitation.email,
        status=invitation.status,
        senderId=invitation.sender_id,
        expiresAt=invitation.expires_at,
        token=token,
    )


# === Health & metadata ===


@app.get("/v1/health", response_model=Health)
def health() -> Health:
    return Health()


@app.get("/v1/version", response_model=Version)
def version() -> Version:
    return Version(version=config.VERSION)


@app.get("/v1/me", response_model=UserSummary)
def read_me(user: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return user_summary(storage.ensure_user(user))


@app.put("/v1/me", response_model=UserSummary)
def update_me(
    payload: ProfileIn,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return user_summary(storage.update_profile(user, payload.name, payload.email))


# === Board endpoints ===


@app.get("/v1/boards", response_model=BoardsPage)
def list_boards(user: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return BoardsPage(boards=[board_out(b) for b in storage.list_boards(user)])


@app.post("/v1/boards", response_model=BoardOut, status_code=201)
def create_board(
    payload: BoardIn,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    board = storage.create_board(user, payload.name, payload.color, payload.description)
    return board_out(board)


@app.get("/v1/boards/{board_id}", response_model=BoardSnapshot)
def get_board(board_id: str, user: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    board = storage.get_board(board_id, user)
    owner = storage.ensure_user(board.owner_id)
    return BoardSnapshot(board=board_detail(board, owner))


@app.put("/v1/boards/{board_id}", response_model=BoardOut)
def update_board(
    board_id: str,
    payload: BoardPatch,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    board = storage.update_board(board_id, user, payload.model_dump(exclude_unset=True))
    return board_out(board)


@app.delete("/v1/boards/{board_id}", status_code=204)
def delete_board(board_id: str, user: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    storage.delete_board(board_id, user)
    return Response(status_code=204)


# === List endpoints ===


@app.post("/v1/boards/{board_id}/lists", response_model=ListOut, status_code=201)
def create_list(
    board_id: str,
    payload: ListIn,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return list_out(storage.create_list(board_id, user, payload.title))


@app.patch("/v1/lists/reorder", response_model=ListsPage)
def reorder_lists(
    payload: ListsReorder,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    lists = storage.reorder_lists(user, payload.lists)
    return ListsPage(lists=[list_out(bl, with_cards=False) for bl in lists])


@app.put("/v1/lists/{list_id}", response_model=ListOut)
def rename_list(
    list_id: str,
    payload: ListIn,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return list_out(storage.update_list(list_id, user, payload.title))


@app.delete("/v1/lists/{list_id}", status_code=204)
def delete_list(list_id: str, user: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    storage.delete_list(list_id, user)
    return Response(status_code=204)


# === Card endpoints ===


@app.post("/v1/lists/{list_id}/cards", response_model=CardOut, status_code=201)
def create_card(
    list_id: str,
    payload: CardIn,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    card = storage.create_card(list_id, user, payload.title, payload.description, payload.dueDate)
    return card_out(card)


@app.patch("/v1/cards/reorder", response_model=CardsPage)
def reorder_cards(
    payload: CardsReorder,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    cards = storage.reorder_cards(user, payload.cards)
    return CardsPage(cards=[card_out(c) for c in cards])


@app.patch("/v1/cards/{card_id}/move", response_model=CardOut)
def move_card(
    card_id: str,
    payload: CardMove,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return card_out(storage.move_card(card_id, user, payload.listId, payload.position))


@app.put("/v1/cards/{card_id}", response_model=CardOut)
def update_card(
    card_id: str,
    payload: CardPatch,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    card = storage.update_card(card_id, user, payload.model_dump(exclude_unset=True))
    return card_out(card)


@app.delete("/v1/cards/{card_id}", status_code=204)
def delete_card(card_id: str, user: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    storage.delete_card(card_id, user)
    return Response(status_code=204)


@app.post("/v1/cards/{card_id}/labels/{label_id}", response_model=CardOut)
def add_card_label(
    card_id: str,
    label_id: str,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return card_out(storage.add_card_label(card_id, label_id, user))


@app.delete("/v1/cards/{card_id}/labels/{label_id}", response_model=CardOut)
def remove_card_label(
    card_id: str,
    label_id: str,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return card_out(storage.remove_card_label(card_id, label_id, user))


@app.post("/v1/cards/{card_id}/members/{member_id}", response_model=CardOut)
def add_card_member(
    card_id: str,
    member_id: str,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return card_out(storage.add_card_member(card_id, member_id, user))


@app.delete("/v1/cards/{card_id}/members/{member_id}", response_model=CardOut)
def remove_card_member(
    card_id: str,
    member_id: str,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return card_out(storage.remove_card_member(card_id, member_id, user))


# === Label endpoints ===


@app.get("/v1/boards/{board_id}/labels", response_model=list[LabelOut])
def list_labels(board_id: str, user: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return [label_out(label) for label in storage.list_labels(board_id, user)]


@app.post("/v1/boards/{board_id}/labels", response_model=LabelOut, status_code=201)
def create_label(
    board_id: str,
    payload: LabelIn,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return label_out(storage.create_label(board_id, user, payload.name, payload.color))


@app.put("/v1/boards/{board_id}/labels/{label_id}", response_model=LabelOut)
def update_label(
    board_id: str,
    label_id: str,
    payload: LabelPatch,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    label = storage.update_label(board_id, label_id, user, payload.model_dump(exclude_unset=True))
    return label_out(label)


@app.delete("/v1/boards/{board_id}/labels/{label_id}", status_code=204)
def delete_label(
    board_id: str,
    label_id: str,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    storage.delete_label(board_id, label_id, user)
    return Response(status_code=204)


# === Invitation endpoints ===


@app.post("/v1/boards/{board_id}/invitations", response_model=InvitationOut, status_code=201)
def invite_to_board(
    board_id: str,
    payload: InvitationIn,
    user: str = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    invitation, token = storage.invite(board_id, user, payload.email)
    return invitation_out(invitation, token)


@app.get("/v1/boards/{board_id}/invitations", response_model=InvitationsPage)
def list_invitations(board_id: str, user: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return InvitationsPage(invitations=[invitation_out(i) for i in storage.list_invitations(board_id, user)])


@app.get("/v1/invitations/{token}", response_model=InvitationOut)
def get_invitation(token: str, storage: Storage = Depends(get_storage)):
    return invitation_out(storage.get_invitation(token))


@app.post("/v1/invitations/{token}/accept", response_model=BoardOut)
def accept_invitation(token: str, user: str = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return board_out(storage.accept_invitation(token, user))
