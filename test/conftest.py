import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def set_admin_password(repo, password: str = "Admin#1234") -> str:
    from cafepos.repositories.sqlite_repo import SqliteRepository

    conn = repo._conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE users SET password=? WHERE email='admin@cafe.local'",
        (SqliteRepository._hash_password(password),),
    )
    conn.commit()
    conn.close()
    return password


def add_product(repo, product_id: str, name: str, price: float, stock: int, threshold: int = 5, category: str = "Coffee"):
    repo.add_product(product_id, name, price, stock, threshold, category, [])
    return repo.get_product_by_id(product_id)
