from collections.abc import Callable

from sqlalchemy.orm import Session

from shopcore.db import SessionLocal

SessionFactory = Callable[[], Session]


def session_factory() -> Session:
    return SessionLocal()


def get_session_factory() -> SessionFactory:
    """FastAPI 의존성: 서비스가 트랜잭션 경계를 직접 관리할 때 사용"""
    return session_factory
