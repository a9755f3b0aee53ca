import logging
import os
import uuid
from contextlib import contextmanager
from typing import List, Optional, Tuple

from flask.logging import default_handler
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base
from sqlalchemy.pool import StaticPool

from .config import Config
from .errors import NotFoundError, PersistenceError
from .helpers import ensure_directories_exist, utcnow
from .models import (
    AssistanceType,
    ChatTurn,
    Conversation,
    MindMapGraph,
    SavedMindMap,
    UserInterest,
)

Base = declarative_base()


class ConversationRecord(Base):
    __tablename__ = "chat_conversations"
    id = Column(String(36), primary_key=True)
    user_id = Column(Text, index=True)
    assistance_type = Column(String(32), nullable=False, default=AssistanceType.GENERAL.value)
    created_at = Column(DateTime, nullable=False)

    def to_model(self) -> Conversation:
        return Conversation(
            id=self.id,
            user_id=self.user_id,
            assistance_type=AssistanceType.coerce(self.assistance_type),
            created_at=self.created_at,
        )


class MessageRecord(Base):
    __tablename__ = "chat_messages"
    id = Column(Integer, primary_key=True)
    conversation_id = Column(
        String(36), ForeignKey("chat_conversations.id"), nullable=False, index=True
    )
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)

    def to_model(self) -> ChatTurn:
        return ChatTurn(
            id=self.id,
            conversation_id=self.conversation_id,
            role=self.role,
            content=self.content,
            created_at=self.created_at,
        )


class InterestRecord(Base):
    __tablename__ = "user_interests"
    __table_args__ = (UniqueConstraint("user_id", "topic"),)
    id = Column(Integer, primary_key=True)
    user_id = Column(Text, nullable=False, index=True)
    topic = Column(Text, nullable=False)
    search_count = Column(Integer, nullable=False, default=1)
    last_searched_at = Column(DateTime, nullable=False)

    def to_model(self) -> UserInterest:
        return UserInterest(
            topic=self.topic,
            search_count=self.search_count,
            last_searched_at=self.last_searched_at,
        )


class MindMapRecord(Base):
    __tablename__ = "mind_maps"
    id = Column(Integer, primary_key=True)
    user_id = Column(Text, nullable=False, index=True)
    topic = Column(Text, nullable=False)
    interest_area = Column(Text)
    skill_level = Column(Text)
    map_data = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)

    def to_model(self) -> SavedMindMap:
        return SavedMindMap(
            id=self.id,
            user_id=self.user_id,
            topic=self.topic,
            interest_area=self.interest_area,
            skill_level=self.skill_level,
            map_data=MindMapGraph.model_validate(self.map_data),
            created_at=self.created_at,
        )


class Store:
    """
    Durable storage for conversations, chat turns, user interests and saved mind maps
    * Lazily connects on first use and creates missing tables
    * Every failure surfaces as PersistenceError
    """

    def __init__(self, config: Config):
        self.db_path = config.get("db.path", default="")
        self._db_connection = None

        self.config = config

        self.logger = logging.getLogger("app.store")
        self.logger.addHandler(default_handler)
        self.logger.setLevel(self.config.get("logging.loglevel", default=logging.INFO))

    @property
    def db_connection(self):
        """Lazy setup of db connection"""
        if self._db_connection:
            return self._db_connection
        if len(self.db_path) == 0:
            self.logger.warning("No 'db.path' was found in config, using volatile, memory storage!")
            engine = create_engine(
                "sqlite://",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        elif "://" in self.db_path:
            engine = self._setup_db_connection(self.db_path)
        else:
            ensure_directories_exist(self.db_path)
            engine = self._setup_db_connection("sqlite:///" + os.path.expanduser(self.db_path))
        Base.metadata.create_all(engine)
        self._db_connection = engine
        return self._db_connection

    def _setup_db_connection(self, conn_string: str):
        """Set up a persistent connection to DB"""
        self.logger.info(f"Opening DB {conn_string}")
        return create_engine(conn_string)

    def close_db_connection(self):
        """Close DB connection"""
        if self._db_connection is not None:
            self._db_connection.dispose()
            self._db_connection = None

    @contextmanager
    def _session(self):
        """One unit of work: commit on success, roll back and raise PersistenceError on failure"""
        try:
            with Session(self.db_connection) as session:
                with session.begin():
                    yield session
        except SQLAlchemyError as ex:
            self.logger.error("Database error: %s", ex)
            raise PersistenceError() from ex

    # Conversations

    def create_conversation(
        self,
        user_id: Optional[str],
        assistance_type: AssistanceType = AssistanceType.GENERAL,
    ) -> Conversation:
        with self._session() as session:
            record = ConversationRecord(
                id=str(uuid.uuid4()),
                user_id=user_id,
                assistance_type=assistance_type.value,
                created_at=utcnow(),
            )
            session.add(record)
            session.flush()
            return record.to_model()

    def _get_conversation_record(self, session: Session, conv_id: str) -> ConversationRecord:
        record = session.get(ConversationRecord, conv_id)
        if record is None:
            raise NotFoundError(f"Conversation not found: {conv_id}")
        return record

    def get_conversation(self, conv_id: str) -> Conversation:
        with self._session() as session:
            return self._get_conversation_record(session, conv_id).to_model()

    def update_assistance_type(self, conv_id: str, assistance_type: AssistanceType) -> Conversation:
        """Changes how future turns are prompted; past turns are left as they are"""
        with self._session() as session:
            record = self._get_conversation_record(session, conv_id)
            record.assistance_type = assistance_type.value
            return record.to_model()

    # Chat turns

    def recent_turns(self, conv_id: str, limit: int = 20) -> List[ChatTurn]:
        """The last <limit> turns of a conversation in chronological order"""
        with self._session() as session:
            stmt = (
                select(MessageRecord)
                .where(MessageRecord.conversation_id == conv_id)
                .order_by(MessageRecord.created_at.desc(), MessageRecord.id.desc())
                .limit(limit)
            )
            records = session.execute(stmt).scalars().all()
            return [record.to_model() for record in reversed(records)]

    def turns_after(self, conv_id: str, after_id: Optional[int] = None) -> List[ChatTurn]:
        """Change feed: all turns with an id greater than after_id"""
        with self._session() as session:
            self._get_conversation_record(session, conv_id)
            stmt = select(MessageRecord).where(MessageRecord.conversation_id == conv_id)
            if after_id is not None:
                stmt = stmt.where(MessageRecord.id > after_id)
            stmt = stmt.order_by(MessageRecord.created_at, MessageRecord.id)
            return [record.to_model() for record in session.execute(stmt).scalars()]

    def append_turn_pair(
        self, conv_id: str, user_content: str, assistant_content: str
    ) -> Tuple[ChatTurn, ChatTurn]:
        """Store a user turn and its reply in one transaction, never one without the other"""
        with self._session() as session:
            self._get_conversation_record(session, conv_id)
            timestamp = utcnow()
            user_turn = MessageRecord(
                conversation_id=conv_id, role="user", content=user_content, created_at=timestamp
            )
            assistant_turn = MessageRecord(
                conversation_id=conv_id,
                role="assistant",
                content=assistant_content,
                created_at=timestamp,
            )
            session.add(user_turn)
            session.flush()
            session.add(assistant_turn)
            session.flush()
            return user_turn.to_model(), assistant_turn.to_model()

    # Interests

    def record_interest(self, user_id: str, topic: str) -> UserInterest:
        """Insert the topic or bump its search count"""
        topic = topic.strip()
        with self._session() as session:
            stmt = select(InterestRecord).where(
                InterestRecord.user_id == user_id,
                func.lower(InterestRecord.topic) == topic.lower(),
            )
            record = session.execute(stmt).scalars().first()
            if record is None:
                record = InterestRecord(
                    user_id=user_id, topic=topic, search_count=1, last_searched_at=utcnow()
                )
                session.add(record)
            else:
                record.search_count += 1
                record.last_searched_at = utcnow()
            session.flush()
            return record.to_model()

    def top_interests(self, user_id: str, limit: int = 5) -> List[UserInterest]:
        with self._session() as session:
            stmt = (
                select(InterestRecord)
                .where(InterestRecord.user_id == user_id)
                .order_by(InterestRecord.search_count.desc(), InterestRecord.last_searched_at.desc())
                .limit(limit)
            )
            return [record.to_model() for record in session.execute(stmt).scalars()]

    # Mind maps

    def save_mind_map(
        self,
        user_id: str,
        topic: str,
        graph: MindMapGraph,
        interest_area: Optional[str] = None,
        skill_level: Optional[str] = None,
    ) -> SavedMindMap:
        with self._session() as session:
            record = MindMapRecord(
                user_id=user_id,
                topic=topic,
                interest_area=interest_area,
                skill_level=skill_level,
                map_data=graph.to_wire(),
                created_at=utcnow(),
            )
            session.add(record)
            session.flush()
            return record.to_model()

    def list_mind_maps(self, user_id: str) -> List[SavedMindMap]:
        with self._session() as session:
            stmt = (
                select(MindMapRecord)
                .where(MindMapRecord.user_id == user_id)
                .order_by(MindMapRecord.created_at.desc(), MindMapRecord.id.desc())
            )
            return [record.to_model() for record in session.execute(stmt).scalars()]
