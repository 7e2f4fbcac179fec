from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from .models import Wallet, get_wallet, utcnow_naive

LOGGER = logging.getLogger(__name__)

DAILY_COOLDOWN = timedelta(hours=24)
DAILY_MIN = 200
DAILY_MAX = 500
WORK_COOLDOWN = timedelta(hours=2)
WORK_MIN = 50
WORK_MAX = 200
WORK_MESSAGES = [
    "You moonlighted as a bug bounty hunter and earned",
    "You streamed on Twitch and your viewers donated",
    "You sold some rare items on the galactic market for",
    "You tutored a youngling in the ways of the Force and received",
    "You delivered mail and received",
    "You advertised nebuverse and received",
]
COIN_SIDES = ("heads", "tails")


class EconomyError(Exception):
    pass


class CooldownActive(EconomyError):
    def __init__(self, action: str, remaining: timedelta):
        super().__init__(f"{action} is on cooldown for {format_remaining(remaining)}")
        self.action = action
        self.remaining = remaining


class InsufficientFunds(EconomyError):
    pass


class InvalidBet(EconomyError):
    pass


@dataclass
class Payout:
    amount: int
    balance: int
    flavour: str = ""


@dataclass
class CoinFlip:
    guess: str
    result: str
    amount: int
    balance: int

    @property
    def won(self) -> bool:
        return self.guess == self.result


def format_remaining(remaining: timedelta) -> str:
    total = max(int(remaining.total_seconds()), 0)
    hours = total // 3600
    minutes = (total % 3600) // 60
    seconds = total % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def balance_of(user_id: int) -> int:
    return get_wallet(user_id).balance


def _check_cooldown(
    action: str, last: Optional[datetime], cooldown: timedelta, now: datetime
) -> None:
    if last is None:
        return
    elapsed = now - last
    if elapsed < cooldown:
        raise CooldownActive(action, cooldown - elapsed)


def _credit(wallet: Wallet, amount: int) -> None:
    wallet.balance = wallet.balance + amount
    wallet.save()


def claim_daily(
    user_id: int, now: Optional[datetime] = None, rng: Any = random
) -> Payout:
    now = now or utcnow_naive()
    wallet = get_wallet(user_id)
    _check_cooldown("daily", wallet.last_daily, DAILY_COOLDOWN, now)
    amount = rng.randint(DAILY_MIN, DAILY_MAX)
    wallet.last_daily = now
    _credit(wallet, amount)
    LOGGER.info(
        "Daily claimed by %s: +%s (balance=%s)", user_id, amount, wallet.balance
    )
    return Payout(amount=amount, balance=wallet.balance)


def work(user_id: int, now: Optional[datetime] = None, rng: Any = random) -> Payout:
    now = now or utcnow_naive()
    wallet = get_wallet(user_id)
    _check_cooldown("work", wallet.last_work, WORK_COOLDOWN, now)
    amount = rng.randint(WORK_MIN, WORK_MAX)
    flavour = rng.choice(WORK_MESSAGES)
    wallet.last_work = now
    _credit(wallet, amount)
    LOGGER.info("Work by %s: +%s (balance=%s)", user_id, amount, wallet.balance)
    return Payout(amount=amount, balance=wallet.balance, flavour=flavour)


def parse_guess(raw: str | None) -> str:
    guess = (raw or "").strip().lower()
    if guess in ("h", "heads"):
        return "heads"
    if guess in ("t", "tails"):
        return "tails"
    raise InvalidBet("Please guess heads or tails.")


def parse_amount(raw: Any) -> int:
    try:
        amount = int(raw)
    except (TypeError, ValueError):
        raise InvalidBet("Please provide a valid, positive amount to bet.") from None
    if amount <= 0:
        raise InvalidBet("Please provide a valid, positive amount to bet.")
    return amount


def coin_flip(user_id: int, guess: str, amount: int, rng: Any = random) -> CoinFlip:
    guess = parse_guess(guess)
    amount = parse_amount(amount)
    wallet = get_wallet(user_id)
    if amount > wallet.balance:
        raise InsufficientFunds("You don't have enough coins to gamble that much.")
    result = rng.choice(COIN_SIDES)
    _credit(wallet, amount if result == guess else -amount)
    LOGGER.info(
        "Coin flip by %s: bet %s on %s, landed %s (balance=%s)",
        user_id,
        amount,
        guess,
        result,
        wallet.balance,
    )
    return CoinFlip(guess=guess, result=result, amount=amount, balance=wallet.balance)
