from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./beer_vote.db"
    jwt_secret: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    # "organization" 或 "event"：整個部署只採用一種授權模型
    scope_model: str = "organization"
    default_max_points: int = 5
    max_voter_batch: int = 500
    feedback_max_length: int = 1000
    log_level: str = "INFO"
    cors_origins: str = "*"

    class Config:
        env_file = ".env"
        env_prefix = "BEERVOTE_"


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()


# 秒；等待其他 session 釋放寫入鎖的上限
SQLITE_BUSY_TIMEOUT = 15


def configure_sqlite(engine):
    """
    SQLite 連線設定

    - 開啟 foreign_keys（否則 ON DELETE CASCADE 不會生效）
    - 關掉 pysqlite 的隱式 transaction，改由 SQLAlchemy 明確送出 BEGIN，
      這樣 SAVEPOINT（db.begin_nested()）才會正確運作
    - 用 BEGIN IMMEDIATE 在 transaction 開始時就取得寫入鎖：
      兩個 session 先讀後寫時，後到的會在 busy timeout 內等待，
      而不是在升級成寫入鎖時直接拿到 "database is locked"
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(database_url: str):
    # SQLite 需要特殊設定：connect_args={"check_same_thread": False}
    # 這允許多執行緒存取同一個 SQLite 連線（FastAPI 的多執行緒環境需要）
    is_sqlite = database_url.startswith("sqlite")
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT} if is_sqlite else {},
        pool_pre_ping=True
    )
    if is_sqlite:
        configure_sqlite(engine)
    return engine


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency：提供 Database Session

    使用 yield 確保 session 在請求結束後會被關閉
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def transactional(func):
    """
    Transaction decorator：確保資料庫操作的原子性

    使用方式：
        @transactional
        def some_business_logic(db: Session, ...):
            # 所有 DB 操作都在一個 transaction 內
            event = Event(...)
            db.add(event)
            # 不需要手動 commit，decorator 會處理

    如果函式內發生異常：
        - 自動 rollback
        - 異常會被重新拋出（讓上層處理）

    注意：
        - 第一個參數必須是 db: Session
        - 不要在函式內手動 commit（decorator 會處理）
        - 業務異常（BeerVoteException）只記 warning，不印 traceback
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        # 找出 db session（可能在 args 或 kwargs）
        db = None
        if args and isinstance(args[0], Session):
            db = args[0]
        elif 'db' in kwargs:
            db = kwargs['db']

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except Exception as e:
            from core.exceptions import BeerVoteException  # 避免 circular import
            if isinstance(e, BeerVoteException):
                logger.warning(f"Transaction rejected in {func.__name__}: {e}")
            else:
                logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
