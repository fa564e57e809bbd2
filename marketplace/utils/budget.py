# marketplace/utils/budget.py
import re
from decimal import Decimal, InvalidOperation

# 第一個數字，可含千分位 (. 或 ,) 與小數
_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)*")

def _normalize(token: str) -> str:
    """
    將 "1.500,00" / "1,500.00" / "150" 轉成 Decimal 可解析的字串。
    最後一個分隔符號後若剛好兩位數，視為小數點；其餘分隔符號視為千分位。
    """
    last_sep = max(token.rfind("."), token.rfind(","))
    if last_sep == -1:
        return token
    integer_part, decimals = token[:last_sep], token[last_sep + 1:]
    integer_digits = re.sub(r"[.,]", "", integer_part)
    if len(decimals) == 2:
        return f"{integer_digits}.{decimals}"
    return integer_digits + decimals

def parse_budget_amount(budget_text: str | None, fallback: float) -> Decimal:
    """
    從自由輸入的預算文字取出入帳金額 (取第一個數字，例如 "R$150-250" -> 150)。
    找不到數字時回傳 fallback。
    """
    fallback_amount = Decimal(str(fallback)).quantize(Decimal("0.01"))
    if not budget_text:
        return fallback_amount

    match = _NUMBER_RE.search(budget_text)
    if not match:
        return fallback_amount

    try:
        amount = Decimal(_normalize(match.group(0)))
    except InvalidOperation:
        return fallback_amount
    if amount <= 0:
        return fallback_amount
    return amount.quantize(Decimal("0.01"))
