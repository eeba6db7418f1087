# storefront/services/catalog_service.py
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from storefront.models import FlashSale, Product, RentalOption
from storefront.services.price_resolver import PricingInput, is_markdown_live, price_snapshot
from storefront.services.time_window import utc_now
import logging

logger = logging.getLogger(__name__)


class CatalogService:
    """Reads products, flash sales and rental tiers and turns them into pricing inputs"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_product(self, product_id: int) -> Optional[Product]:
        """Get an active product by ID"""
        product = self.db.query(Product).filter_by(productID=product_id).first()
        if product is None or not product.is_active:
            return None
        return product

    def get_flash_sale_for_product(self, product: Product, now: Optional[datetime] = None) -> Optional[FlashSale]:
        """
        Return the flash sale row that governs the product's price, if any.

        Rows whose end time has already passed are still returned while they
        remain flagged active: the countdown, not this query, decides expiry.
        """
        now = now or utc_now()
        candidates = self.db.query(FlashSale).filter(
            FlashSale.productID == product.productID,
            FlashSale._is_active.is_(True),
        ).all()
        started = [sale for sale in candidates if sale.has_started(now)]
        if not started:
            return None
        return max(started, key=lambda sale: sale.end_time)

    def build_pricing_input(self, product: Product, now: Optional[datetime] = None) -> PricingInput:
        """Build the pricing input for a product, preferring its flash sale row"""
        flash_sale = self.get_flash_sale_for_product(product, now)
        if flash_sale is not None:
            original = flash_sale.original_price or product.original_price or product.price
            return PricingInput(
                base_price=flash_sale.sale_price,
                original_price=original,
                markdown_active=True,
                deadline=flash_sale.end_time,
            )

        if product.is_flash_sale:
            return PricingInput(
                base_price=product.price,
                original_price=product.original_price,
                markdown_active=True,
                deadline=product.flash_sale_end_time,
            )

        return PricingInput(
            base_price=product.price,
            original_price=product.original_price,
            markdown_active=False,
        )

    def get_pricing_snapshot(self, product_id: int, now: Optional[datetime] = None) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
        """Countdown and resolved price for one product at ``now``"""
        now = now or utc_now()
        product = self.get_product(product_id)
        if product is None:
            return False, "Product not found", None

        pricing = self.build_pricing_input(product, now)
        remaining, resolved = price_snapshot(pricing, now)
        deadline = pricing.deadline.isoformat() if isinstance(pricing.deadline, datetime) else pricing.deadline
        return True, "OK", {
            "product_id": product.productID,
            "name": product.name,
            "flash_sale_active": is_markdown_live(pricing, remaining),
            "deadline": deadline,
            "remaining": remaining.to_dict(),
            "price": resolved.to_dict(),
        }

    def list_flash_sale_products(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Products whose markdown window is open right now"""
        now = now or utc_now()
        products = self.db.query(Product).filter(Product._is_active.is_(True)).all()

        listings = []
        for product in products:
            pricing = self.build_pricing_input(product, now)
            if not pricing.markdown_active:
                continue
            remaining, resolved = price_snapshot(pricing, now)
            if not is_markdown_live(pricing, remaining):
                continue
            listings.append({
                "product_id": product.productID,
                "name": product.name,
                "game_title": product.game_title,
                "remaining": remaining.to_dict(),
                "price": resolved.to_dict(),
            })

        listings.sort(key=lambda item: (item["remaining"]["days"], item["remaining"]["hours"],
                                        item["remaining"]["minutes"], item["remaining"]["seconds"]))
        logger.debug(f"Found {len(listings)} live flash sale products")
        return listings

    def get_rental_option(self, product: Product, rental_option_id: Optional[int]) -> Optional[RentalOption]:
        """Get one of the product's rental tiers, or None"""
        if rental_option_id is None:
            return None
        return self.db.query(RentalOption).filter_by(
            productID=product.productID,
            rentalOptionID=rental_option_id,
        ).first()
