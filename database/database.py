"""
Модуль для работы с базой данных SQLite
"""
import sqlite3
import os
from contextlib import contextmanager
from typing import Generator
from config import settings


def get_connection() -> sqlite3.Connection:
    """Получение подключения к БД"""
    conn = sqlite3.Connection(settings.DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Контекстный менеджер для работы с БД"""
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db():
    """Инициализация базы данных"""
    # Создание директории для БД, если не существует
    db_dir = os.path.dirname(settings.DB_PATH)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir)

    with get_db() as conn:
        cursor = conn.cursor()

        # Бильярдные столы
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS billiard_tables (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                status TEXT DEFAULT 'available',
                price_per_hour INTEGER,
                current_order_id INTEGER
            )
        """)

        # Товары
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                price INTEGER NOT NULL,
                cost INTEGER DEFAULT 0,
                stock INTEGER DEFAULT 0,
                category TEXT DEFAULT '',
                barcode TEXT DEFAULT ''
            )
        """)

        # Заказы (сессии столов); items и note хранятся как JSON
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS orders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                date TIMESTAMP NOT NULL,
                status TEXT DEFAULT 'pending',
                table_id INTEGER,
                customer_id INTEGER,
                items TEXT DEFAULT '[]',
                discount INTEGER DEFAULT 0,
                price_per_hour INTEGER,
                custom_duration INTEGER,
                custom_table_fee INTEGER,
                custom_items_total INTEGER,
                note TEXT,
                total INTEGER DEFAULT 0,
                payment_method TEXT,
                FOREIGN KEY (table_id) REFERENCES billiard_tables (id),
                FOREIGN KEY (customer_id) REFERENCES customers (id)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_orders_status_date
            ON orders(status, date)
        """)

        # Клиенты
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS customers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                phone TEXT NOT NULL UNIQUE,
                points INTEGER DEFAULT 0
            )
        """)

        # Промокоды
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS coupons (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT NOT NULL UNIQUE,
                type TEXT NOT NULL,
                value INTEGER NOT NULL,
                is_active INTEGER DEFAULT 1,
                description TEXT DEFAULT ''
            )
        """)

        # Проверка наличия столов
        cursor.execute("SELECT COUNT(*) as count FROM billiard_tables")
        if cursor.fetchone()['count'] == 0:
            # Добавление столов по умолчанию
            cursor.executemany(
                "INSERT INTO billiard_tables (name, price_per_hour) VALUES (?, ?)",
                [
                    ("Леопардовый пул", 60000),
                    ("Русский (Зеленый)", 50000),
                ]
            )

        cursor.execute("SELECT COUNT(*) as count FROM products")
        if cursor.fetchone()['count'] == 0:
            cursor.executemany(
                "INSERT INTO products (name, price, cost, stock, category) VALUES (?, ?, ?, ?, ?)",
                [
                    ("Чай", 15000, 5000, 100, "Напитки"),
                    ("Кофе", 25000, 8000, 100, "Напитки"),
                    ("Вода", 10000, 4000, 100, "Напитки"),
                    ("Орешки", 20000, 9000, 50, "Закуски"),
                ]
            )

        conn.commit()
