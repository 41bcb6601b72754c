from __future__ import annotations

import sqlite3
import hashlib
import hmac
import json
import os
import secrets
import shutil
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from cafepos.domain.errors import InsufficientStockError, TransientIOError, ValidationError
from cafepos.domain.models import Product, Sale, SaleItem, User


_PRODUCT_COLUMNS = "id, name, price, stock, low_stock_threshold, category, image_urls"


def _row_to_product(r) -> Product:
    return Product(
        id=str(r[0]),
        name=str(r[1]),
        price=float(r[2]),
        stock=int(r[3]),
        low_stock_threshold=int(r[4]),
        category=str(r[5]),
        image_urls=tuple(str(u) for u in json.loads(r[6] or "[]")),
    )


class SqliteRepository:
    def __init__(self, db_path: Path | str, timeout: float = 5.0):
        self.db_path = str(db_path)
        self.timeout = float(timeout)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()
        self._ensure_bootstrap_admin()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_catalog_and_ledger),
                (2, self._migration_v2_users),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()
        if backup_path is not None:
            backup_path.unlink(missing_ok=True)

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_catalog_and_ledger(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            price REAL NOT NULL CHECK(price >= 0),
            stock INTEGER NOT NULL DEFAULT 0 CHECK(stock >= 0),
            low_stock_threshold INTEGER NOT NULL DEFAULT 0 CHECK(low_stock_threshold >= 0),
            category TEXT NOT NULL,
            image_urls TEXT NOT NULL DEFAULT '[]'
        )
        """
        )

        cur.execute("""
        CREATE TABLE IF NOT EXISTS sales (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            created_at TEXT NOT NULL,
            total REAL NOT NULL CHECK(total >= 0),
            actor_user_id INTEGER
        )
        """)

        # product_id has no foreign key: historical sales outlive deleted products
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sale_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sale_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            product_id TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            price REAL NOT NULL CHECK(price >= 0),
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE
        )
        """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sale_items_sale ON sale_items(sale_id, position)")

    def _migration_v2_users(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL UNIQUE,
                password TEXT NOT NULL,
                role TEXT NOT NULL CHECK(role IN ('admin','cashier')),
                active INTEGER NOT NULL DEFAULT 1,
                failed_attempts INTEGER NOT NULL DEFAULT 0,
                locked_until TEXT,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )

    def _ensure_bootstrap_admin(self) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM users WHERE active=1")
        active_users = int(cur.fetchone()[0])
        if active_users > 0:
            conn.close()
            return

        bootstrap_password = os.environ.get("CAFEPOS_BOOTSTRAP_ADMIN_PASSWORD", "").strip() or secrets.token_urlsafe(12)
        cur.execute(
            """
            INSERT INTO users (email, password, role, active)
            VALUES ('admin@cafe.local', ?, 'admin', 1)
            """,
            (self._hash_password(bootstrap_password),),
        )
        conn.commit()
        conn.close()

        pw_file = Path(self.db_path).parent / ".admin_bootstrap_password"
        pw_file.write_text(bootstrap_password + "\n", encoding="utf-8")
        try:
            pw_file.chmod(0o600)
        except OSError:
            pass

    # ---------- Users ----------
    def list_users(self) -> list[User]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, email, role, active FROM users WHERE active=1 ORDER BY email")
        rows = cur.fetchall()
        conn.close()
        return [User(id=int(r[0]), email=str(r[1]), role=str(r[2]), active=int(r[3])) for r in rows]

    def _get_user_row(self, cur: sqlite3.Cursor, email: str):
        cur.execute(
            """
            SELECT id, email, role, active, password,
                   COALESCE(failed_attempts, 0), locked_until
            FROM users
            WHERE active=1 AND email=?
            """,
            (email,),
        )
        return cur.fetchone()

    def get_user_security_state(self, email: str) -> tuple[int, Optional[str]] | None:
        conn = self._conn()
        cur = conn.cursor()
        row = self._get_user_row(cur, email)
        conn.close()
        if not row:
            return None
        return int(row[5]), (str(row[6]) if row[6] is not None else None)

    def record_login_failure(self, email: str, max_attempts: int, lockout_seconds: int) -> tuple[int, Optional[str]]:
        conn = self._conn()
        cur = conn.cursor()
        row = self._get_user_row(cur, email)
        if not row:
            conn.close()
            return 0, None

        attempts = int(row[5]) + 1
        locked_until = None
        if attempts >= int(max_attempts):
            attempts = 0
            cur.execute(
                "UPDATE users SET failed_attempts=?, locked_until=datetime('now', ?) WHERE id=?",
                (attempts, f"+{int(lockout_seconds)} seconds", int(row[0])),
            )
            cur.execute("SELECT locked_until FROM users WHERE id=?", (int(row[0]),))
            locked_until = str(cur.fetchone()[0])
        else:
            cur.execute("UPDATE users SET failed_attempts=? WHERE id=?", (attempts, int(row[0])))
        conn.commit()
        conn.close()
        return attempts, locked_until

    def clear_login_guard(self, user_id: int) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("UPDATE users SET failed_attempts=0, locked_until=NULL WHERE id=?", (int(user_id),))
        conn.commit()
        conn.close()

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        conn = self._conn()
        cur = conn.cursor()
        row = self._get_user_row(cur, email)
        conn.close()
        if row and self._verify_password(str(row[4]), password):
            return User(id=int(row[0]), email=str(row[1]), role=str(row[2]), active=int(row[3]))
        return None

    def create_user(self, email: str, password: str, role: str) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO users (email, password, role, active)
            VALUES (?, ?, ?, 1)
            """,
            (email, self._hash_password(password), role),
        )
        uid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return uid

    # ---------- Products ----------
    def add_product(
        self,
        product_id: str,
        name: str,
        price: float,
        stock: int,
        low_stock_threshold: int,
        category: str,
        image_urls: Iterable[str],
    ) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            INSERT INTO products ({_PRODUCT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
            (product_id, name, float(price), int(stock), int(low_stock_threshold), category, json.dumps(list(image_urls))),
        )
        conn.commit()
        conn.close()

    def replace_product(self, product: Product, stock_delta: Optional[int] = None) -> Optional[Product]:
        """Overwrite a product's fields and return the stored record.

        With ``stock_delta`` the stored stock is adjusted relative to its
        current value instead of being overwritten with ``product.stock``.
        Returns None when the product does not exist.
        """
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            cur.execute("SELECT stock FROM products WHERE id=?", (product.id,))
            row = cur.fetchone()
            if not row:
                conn.rollback()
                return None

            stock = int(product.stock) if stock_delta is None else int(row[0]) + int(stock_delta)
            if stock < 0:
                raise ValidationError(f"Stock for {product.id} would drop below 0 (current: {int(row[0])}).")

            cur.execute(
                """
                UPDATE products
                SET name=?, price=?, stock=?, low_stock_threshold=?, category=?, image_urls=?
                WHERE id=?
                """,
                (
                    product.name,
                    float(product.price),
                    stock,
                    int(product.low_stock_threshold),
                    product.category,
                    json.dumps(list(product.image_urls)),
                    product.id,
                ),
            )
            conn.commit()
            return replace(product, stock=stock)
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def delete_product(self, product_id: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("DELETE FROM products WHERE id=?", (product_id,))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    def list_products(self) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {_PRODUCT_COLUMNS} FROM products ORDER BY rowid")
        rows = cur.fetchall()
        conn.close()
        return [_row_to_product(r) for r in rows]

    def get_product_by_id(self, product_id: str) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id=?", (product_id,))
        r = cur.fetchone()
        conn.close()
        if not r:
            return None
        return _row_to_product(r)

    def count_products(self) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM products")
        n = int(cur.fetchone()[0])
        conn.close()
        return n

    # ---------- Sales ----------
    def record_sale(
        self,
        created_at_iso: str,
        items: Iterable[SaleItem],
        actor_user_id: Optional[int] = None,
    ) -> int:
        """Validate stock and commit a sale in one write transaction.

        Raises InsufficientStockError (nothing written) when a product is
        missing or short, and TransientIOError when SQLite fails mid-way.
        """
        items = list(items)
        requested: dict[str, int] = {}
        for it in items:
            requested[it.product_id] = requested.get(it.product_id, 0) + int(it.quantity)

        try:
            conn = self._conn()
        except sqlite3.Error as exc:
            raise TransientIOError(f"Could not open the sales database: {exc}") from exc

        cur = conn.cursor()
        try:
            # take the write lock before reading stock so validation and commit see the same rows
            cur.execute("BEGIN IMMEDIATE")

            # None marks a product that no longer exists
            stock: dict[str, Optional[int]] = {}
            for pid in requested:
                cur.execute("SELECT stock FROM products WHERE id=?", (pid,))
                row = cur.fetchone()
                stock[pid] = int(row[0]) if row else None

            for pid, qty in requested.items():
                available = stock[pid] or 0
                if available < qty:
                    raise InsufficientStockError(pid, qty, available, stock)

            total = sum(it.price * it.quantity for it in items)
            cur.execute(
                "INSERT INTO sales (created_at, total, actor_user_id) VALUES (?, ?, ?)",
                (created_at_iso, float(total), actor_user_id),
            )
            sale_id = int(cur.lastrowid)

            for position, it in enumerate(items):
                self._insert_sale_item(cur, sale_id, position, it)

            for pid, qty in requested.items():
                cur.execute("UPDATE products SET stock = stock - ? WHERE id = ?", (qty, pid))

            conn.commit()
            return sale_id
        except sqlite3.Error as exc:
            conn.rollback()
            raise TransientIOError(f"Could not persist sale: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _insert_sale_item(self, cur: sqlite3.Cursor, sale_id: int, position: int, item: SaleItem) -> None:
        cur.execute(
            """
            INSERT INTO sale_items (sale_id, position, product_id, quantity, price)
            VALUES (?, ?, ?, ?, ?)
        """,
            (sale_id, position, item.product_id, int(item.quantity), float(item.price)),
        )

    def _sales_from_rows(self, cur: sqlite3.Cursor, headers: list[tuple]) -> list[Sale]:
        if not headers:
            return []
        ids = [int(h[0]) for h in headers]
        placeholders = ",".join("?" for _ in ids)
        cur.execute(
            f"""
            SELECT sale_id, product_id, quantity, price
            FROM sale_items
            WHERE sale_id IN ({placeholders})
            ORDER BY sale_id, position
        """,
            ids,
        )
        items_by_sale: dict[int, list[SaleItem]] = {}
        for r in cur.fetchall():
            items_by_sale.setdefault(int(r[0]), []).append(
                SaleItem(product_id=str(r[1]), quantity=int(r[2]), price=float(r[3]))
            )
        return [
            Sale(
                id=int(h[0]),
                items=tuple(items_by_sale.get(int(h[0]), [])),
                total=float(h[2]),
                created_at=datetime.fromisoformat(str(h[1])),
                actor_user_id=(int(h[3]) if h[3] is not None else None),
            )
            for h in headers
        ]

    def list_sales(self) -> list[Sale]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, created_at, total, actor_user_id FROM sales ORDER BY id")
        headers = cur.fetchall()
        sales = self._sales_from_rows(cur, headers)
        conn.close()
        return sales

    def get_sale(self, sale_id: int) -> Optional[Sale]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, created_at, total, actor_user_id FROM sales WHERE id=?", (int(sale_id),))
        headers = cur.fetchall()
        sales = self._sales_from_rows(cur, headers)
        conn.close()
        return sales[0] if sales else None

    @staticmethod
    def _hash_password(password: str, *, rounds: int = 200_000, salt: str | None = None) -> str:
        salt = salt or secrets.token_hex(16)
        digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), rounds).hex()
        return f"pbkdf2_sha256${rounds}${salt}${digest}"

    @staticmethod
    def _verify_password(stored: str, provided: str) -> bool:
        if not stored.startswith("pbkdf2_sha256$"):
            return False
        try:
            _algo, rounds_s, salt, digest = stored.split("$", 3)
            candidate = hashlib.pbkdf2_hmac(
                "sha256",
                provided.encode("utf-8"),
                bytes.fromhex(salt),
                int(rounds_s),
            ).hex()
        except ValueError:
            return False
        return hmac.compare_digest(candidate, digest)
