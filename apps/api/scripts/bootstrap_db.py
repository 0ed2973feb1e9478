"""Create the chat schema and seed a demo conversation for development."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from learnhub.db.session import SessionLocal, engine
from learnhub.models import ChatMessage, Conversation
from learnhub.models.base import Base

DEMO_CONVERSATION = {
	"id": "conv-demo",
	"student_id": "student-demo",
	"mentor_id": "mentor-demo",
	"messages": [
		("student-demo", "Hi! Could you review my capstone outline before Friday?"),
		("mentor-demo", "Sure, share the doc and book a 30 minute session."),
	],
}


async def create_schema() -> None:
	"""Create the database schema if it does not already exist."""

	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)


async def seed_conversation() -> None:
	"""Insert the demo student/mentor thread unless it already exists."""

	async with SessionLocal() as session:
		async with session.begin():
			if await session.get(Conversation, DEMO_CONVERSATION["id"]) is not None:
				return

			now = datetime.now(timezone.utc)
			session.add(
				Conversation(
					id=DEMO_CONVERSATION["id"],
					student_id=DEMO_CONVERSATION["student_id"],
					mentor_id=DEMO_CONVERSATION["mentor_id"],
					total_messages=len(DEMO_CONVERSATION["messages"]),
					last_message_at=now,
					is_active=True,
					created_at=now,
				)
			)
			await session.flush()

			for index, (sender_id, content) in enumerate(DEMO_CONVERSATION["messages"], start=1):
				receiver_id = (
					DEMO_CONVERSATION["mentor_id"]
					if sender_id == DEMO_CONVERSATION["student_id"]
					else DEMO_CONVERSATION["student_id"]
				)
				session.add(
					ChatMessage(
						id=f"{DEMO_CONVERSATION['id']}-{index}",
						conversation_id=DEMO_CONVERSATION["id"],
						sender_id=sender_id,
						receiver_id=receiver_id,
						content=content,
						is_paid=False,
						created_at=now,
					)
				)


async def main() -> None:
	await create_schema()
	await seed_conversation()
	print("Database schema ensured and demo conversation seeded.")


if __name__ == "__main__":
	asyncio.run(main())
