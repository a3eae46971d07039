"""
Расчёт стоимости аренды стола

Все денежные суммы — целые числа в минимальных единицах валюты.
Округление при поминутной оплате — до ближайшего целого, половина вверх.
"""
from dataclasses import dataclass
from typing import Optional

from billing.errors import BillingConfigError
from utils.time_utils import format_duration


@dataclass(frozen=True)
class BillingPolicy:
    """Настройки тарификации"""
    enable_block_billing: bool = False
    block_minutes: int = 60
    grace_period_minutes: int = 5
    rounding_unit: int = 1000  # блочная оплата округляется вверх до этой суммы

    def __post_init__(self):
        if self.block_minutes is None or self.block_minutes <= 0:
            raise BillingConfigError(
                f"Длительность блока должна быть больше нуля: {self.block_minutes}"
            )
        if self.grace_period_minutes is None or self.grace_period_minutes < 0:
            raise BillingConfigError(
                f"Бесплатный период не может быть отрицательным: {self.grace_period_minutes}"
            )
        if self.rounding_unit is None or self.rounding_unit <= 0:
            raise BillingConfigError(
                f"Шаг округления должен быть больше нуля: {self.rounding_unit}"
            )


@dataclass(frozen=True)
class TableFee:
    """Результат расчёта аренды стола"""
    minutes: int
    fee: int             # сумма к оплате (с учётом ручной суммы)
    calculated_fee: int  # сумма по тарифу
    label: str
    blocks: int = 0
    is_warmup: bool = False
    is_override: bool = False

    @property
    def effective_hourly_rate(self) -> Optional[int]:
        """Фактическая цена часа с учётом ручной суммы"""
        return effective_hourly_rate(self.fee, self.minutes)


def round_half_up(numerator: int, denominator: int) -> int:
    """Целочисленное деление с округлением половины вверх"""
    return (2 * numerator + denominator) // (2 * denominator)


def ceil_div(numerator: int, denominator: int) -> int:
    """Целочисленное деление с округлением вверх"""
    return -(-numerator // denominator)


def effective_hourly_rate(fee: int, minutes: int) -> Optional[int]:
    if minutes <= 0:
        return None
    return round_half_up(fee * 60, minutes)


def calculate_table_fee(
    minutes: int,
    price_per_hour: Optional[int],
    policy: BillingPolicy,
    custom_fee: Optional[int] = None,
) -> TableFee:
    """
    Стоимость аренды за minutes минут игры

    minutes — либо ручная длительность, либо прошедшее время сессии.
    custom_fee заменяет сумму к оплате, но расчётная сумма сохраняется
    в calculated_fee для сравнения.
    """
    if price_per_hour is None:
        raise BillingConfigError("Не задан тариф стола (цена за час)")
    if price_per_hour < 0:
        raise BillingConfigError(f"Цена за час не может быть отрицательной: {price_per_hour}")

    # Рассинхрон часов не должен давать отрицательное время
    minutes = max(0, int(minutes))
    blocks = 0
    is_warmup = False

    if minutes < policy.grace_period_minutes:
        calculated = 0
        is_warmup = True
        label = f"{format_duration(minutes)} (разминка)"
    elif policy.enable_block_billing:
        blocks = max(1, ceil_div(minutes, policy.block_minutes))
        # blocks * price * (block / 60), округлённое вверх до rounding_unit
        raw = blocks * price_per_hour * policy.block_minutes
        calculated = ceil_div(raw, 60 * policy.rounding_unit) * policy.rounding_unit
        label = f"{format_duration(minutes)} ({blocks} бл. по {policy.block_minutes} мин)"
    else:
        calculated = round_half_up(price_per_hour * minutes, 60)
        label = format_duration(minutes)

    if custom_fee is not None:
        return TableFee(
            minutes=minutes,
            fee=custom_fee,
            calculated_fee=calculated,
            label=f"{label}, вручную",
            blocks=blocks,
            is_warmup=is_warmup,
            is_override=True,
        )

    return TableFee(
        minutes=minutes,
        fee=calculated,
        calculated_fee=calculated,
        label=label,
        blocks=blocks,
        is_warmup=is_warmup,
    )
