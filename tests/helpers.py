from datetime import datetime

import numpy as np

from shared.models.chat import Chat, ChatMessage, Contact

TEST_DIMENSION = 32
TEST_API_KEY = "test-key"


async def make_chat(store, messages, title="Support chat", contact_name="Anna", department="Billing"):
    """Persist a contact and a chat built from (timestamp, content, is_user) tuples."""
    contact = Contact(name=contact_name, department=department)
    await store.do_save_contact(contact)
    chat = Chat(
        title=title,
        created_at=datetime(2024, 1, 1, 8, 0),
        contact_id=contact.id,
        messages=[ChatMessage(content=content, timestamp=ts, is_user=is_user) for ts, content, is_user in messages],
    )
    await store.do_save_chat(chat)
    return chat


def vector_with_similarity(target: list[float], other: list[float], similarity: float) -> list[float]:
    """A unit vector whose cosine similarity to the unit vector target is exactly similarity."""
    t = np.asarray(target, dtype=np.float64)
    o = np.asarray(other, dtype=np.float64)
    orthogonal = o - np.dot(o, t) * t
    orthogonal /= np.linalg.norm(orthogonal)
    return (similarity * t + np.sqrt(1.0 - similarity**2) * orthogonal).tolist()
