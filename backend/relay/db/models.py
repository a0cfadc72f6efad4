from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import String, BigInteger, Text

Base = declarative_base()


class TransferRecord(Base):
    __tablename__ = "transfers"

    key: Mapped[str] = mapped_column(String(5), primary_key=True)
    # epoch milliseconds
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
