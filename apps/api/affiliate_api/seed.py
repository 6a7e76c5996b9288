from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from .db import SessionLocal
from .models import AffiliateLink

DEMO_LINKS = [
    {
        "name": "Standing Desk",
        "short_code": "desk",
        "destination_url": "https://shop.example.com/standing-desk",
        "category": "Office",
        "platform": "amazon",
        "commission_rate": Decimal("4.50"),
    },
    {
        "name": "Noise Cancelling Headphones",
        "short_code": "headphones",
        "destination_url": "https://shop.example.com/headphones",
        "category": "Electronics",
        "platform": "amazon",
        "commission_rate": Decimal("3.00"),
    },
    {
        "name": "Trail Running Shoes",
        "short_code": "shoes",
        "destination_url": "https://outdoor.example.com/trail-shoes",
        "category": "Outdoor",
        "platform": "shareasale",
        "commission_rate": Decimal("8.00"),
    },
]


def main() -> None:
    created: list[str] = []
    with SessionLocal() as db:
        for fields in DEMO_LINKS:
            exists = db.scalar(select(AffiliateLink).where(AffiliateLink.short_code == fields["short_code"]))
            if exists is None:
                db.add(AffiliateLink(**fields))
                created.append(str(fields["short_code"]))
        db.commit()
    print(f"Seed complete: created={','.join(created) or 'none'} total={len(DEMO_LINKS)}")


if __name__ == "__main__":
    main()
