from fastapi import APIRouter, Depends, HTTPException, Request, status

from server.dependencies.auth import verify_api_key
from server.models.requests import AddMessageRequest, CreateChatRequest
from shared.errors import ChatNotFoundError
from shared.models.chat import Chat, ChatMessage, Contact

router = APIRouter(prefix="/chats", tags=["chats"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_chat(
    request: Request,
    body: CreateChatRequest,
    _: None = Depends(verify_api_key),
) -> Chat:
    """Create a chat with a new contact, opened by a greeting from the contact."""
    contact = Contact(name=body.contact_name, department=body.department)
    return await request.app.state.chat_service.create_chat(contact)


@router.post("/{chat_id}/messages", status_code=status.HTTP_202_ACCEPTED)
async def add_message(
    request: Request,
    chat_id: int,
    body: AddMessageRequest,
    _: None = Depends(verify_api_key),
) -> ChatMessage:
    """Append a message to a chat. The segment update runs in the background.

    Args:
        request (Request): FastAPI request (provides app.state.chat_service).
        chat_id (int): The chat to append to.
        body (AddMessageRequest): JSON body with content and is_user.
        _ (None): Auth dependency result (unused).

    Returns:
        ChatMessage: The persisted message.

    Raises:
        HTTPException: 404 if the chat does not exist.
    """
    chat_service = request.app.state.chat_service
    try:
        return await chat_service.add_message(chat_id, body.content, body.is_user)
    except ChatNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
