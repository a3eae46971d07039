"""
Состояния для FSM (Finite State Machine)
"""
from aiogram.fsm.state import State, StatesGroup


class SessionInputStates(StatesGroup):
    """Ввод значений для открытого стола"""
    entering_phone = State()
    entering_customer_name = State()
    entering_discount = State()
    entering_coupon = State()
    entering_duration = State()
    entering_table_fee = State()
    entering_items_total = State()
    entering_item_price = State()
    entering_note = State()
    entering_start_time = State()
    entering_price_per_hour = State()
