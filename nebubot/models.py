from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from peewee import (
    AutoField,
    CharField,
    DateTimeField,
    IntegerField,
    Model,
    SqliteDatabase,
)

bot_database = SqliteDatabase(None)

DEFAULT_DOB_TEXT = "18/08/2025"
DEFAULT_GOAL_VALUE = 30


def utcnow_naive() -> datetime:
    """Return current UTC time without tzinfo for SQLite storage."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel(Model):
    created_at = DateTimeField(default=utcnow_naive)
    updated_at = DateTimeField(default=utcnow_naive)

    def save(self, *args, **kwargs):  # type: ignore[override]
        self.updated_at = utcnow_naive()
        return super().save(*args, **kwargs)

    class Meta:
        database = bot_database


class GuildConfig(BaseModel):
    guild_id = IntegerField(primary_key=True)
    counting_channel_id = IntegerField(null=True)
    vc_humans_id = IntegerField(null=True)
    vc_dob_id = IntegerField(null=True)
    vc_goal_id = IntegerField(null=True)
    dob_text = CharField(default=DEFAULT_DOB_TEXT)
    goal_value = IntegerField(default=DEFAULT_GOAL_VALUE)


class MemberStats(BaseModel):
    user_id = IntegerField(primary_key=True)
    xp = IntegerField(default=0)
    level = IntegerField(default=0)
    invites = IntegerField(default=0)


class Wallet(BaseModel):
    user_id = IntegerField(primary_key=True)
    balance = IntegerField(default=0)
    last_daily = DateTimeField(null=True)
    last_work = DateTimeField(null=True)


class CountingState(BaseModel):
    guild_id = IntegerField(primary_key=True)
    number = IntegerField(default=1)
    last_user_id = IntegerField(null=True)


class InviteUse(BaseModel):
    id = AutoField()
    guild_id = IntegerField()
    code = CharField()
    uses = IntegerField(default=0)

    class Meta:
        indexes = ((("guild_id", "code"), True),)


ALL_MODELS = [GuildConfig, MemberStats, Wallet, CountingState, InviteUse]


def init_db(path: str) -> SqliteDatabase:
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    if not bot_database.is_closed():
        bot_database.close()
    bot_database.init(path)
    bot_database.connect(reuse_if_open=True)
    bot_database.create_tables(ALL_MODELS)
    return bot_database


def close_db() -> None:
    if not bot_database.is_closed():
        bot_database.close()


def get_guild_config(guild_id: int) -> GuildConfig:
    config, _created = GuildConfig.get_or_create(guild_id=guild_id)
    return config


def counting_channel_id(guild_id: int) -> Optional[int]:
    config = GuildConfig.get_or_none(GuildConfig.guild_id == guild_id)
    return config.counting_channel_id if config else None


def get_member_stats(user_id: int) -> MemberStats:
    stats, _created = MemberStats.get_or_create(user_id=user_id)
    return stats


def get_wallet(user_id: int) -> Wallet:
    wallet, _created = Wallet.get_or_create(user_id=user_id)
    return wallet


def get_counting_state(guild_id: int) -> CountingState:
    state, _created = CountingState.get_or_create(guild_id=guild_id)
    return state
