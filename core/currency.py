import logging
import re
from dataclasses import dataclass
from typing import Optional

import aiohttp

from .errors import HTTP_ERRORS, NotFoundError, UnavailableError

log = logging.getLogger(__name__)

RATES_URL = "https://open.er-api.com/v6/latest/{base}"

QUERY_PATTERN = re.compile(
    r"^\s*(?:(?P<amount>\d+(?:[.,]\d+)?)\s*)?"
    r"(?P<source>[a-zA-Z]{3})\s+(?:(?:to|in|into)\s+)?(?P<target>[a-zA-Z]{3})\s*$"
)


@dataclass
class ConversionQuery:
    amount: float
    source: str
    target: str


@dataclass
class Conversion:
    amount: float
    source: str
    target: str
    rate: float
    result: float
    updated: str = ""


def parse_query(text: str) -> Optional[ConversionQuery]:
    match = QUERY_PATTERN.match(text or "")
    if not match:
        return None
    raw_amount = match.group("amount")
    amount = float(raw_amount.replace(",", ".")) if raw_amount else 1.0
    return ConversionQuery(
        amount=amount,
        source=match.group("source").upper(),
        target=match.group("target").upper(),
    )


def format_amount(value: float) -> str:
    if value and abs(value) < 0.01:
        return f"{value:.6f}".rstrip("0")
    return f"{value:,.2f}"


def format_conversion(conv: Conversion) -> str:
    lines = [
        f"💱 *{format_amount(conv.amount)} {conv.source}* = *{format_amount(conv.result)} {conv.target}*",
        f"1 {conv.source} = {conv.rate:.6g} {conv.target}",
    ]
    if conv.updated:
        lines.append(f"_Rates updated: {conv.updated}_")
    return "\n".join(lines)


async def convert(session: aiohttp.ClientSession, query: ConversionQuery) -> Conversion:
    url = RATES_URL.format(base=query.source)
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=10)) as resp:
            if resp.status == 404:
                raise NotFoundError(f"❌ Unknown currency: {query.source}")
            resp.raise_for_status()
            data = await resp.json(content_type=None)
    except HTTP_ERRORS as exc:
        log.warning("exchange rate lookup failed for %s: %s", query.source, exc)
        raise UnavailableError("😕 Exchange rates are unavailable right now. Please try again later.") from exc

    if data.get("result") != "success":
        raise NotFoundError(f"❌ Unknown currency: {query.source}")
    rates = data.get("rates") or {}
    rate = rates.get(query.target)
    if rate is None:
        raise NotFoundError(f"❌ Unknown currency: {query.target}")
    return Conversion(
        amount=query.amount,
        source=query.source,
        target=query.target,
        rate=float(rate),
        result=query.amount * float(rate),
        updated=str(data.get("time_last_update_utc") or ""),
    )
