"""Tests for categories, sub-categories and products."""

from datetime import datetime, timedelta

import pytest

from errors import BadRequestError, ConflictError, NotFoundError
from models import Category, Product, SubCategory, SubCategoryTag
from schemas import (
    CategoryCreate,
    CategoryUpdate,
    ProductCreate,
    ProductUpdate,
    SubCategoryCreate,
    SubCategoryUpdate
)


@pytest.fixture()
def furniture(db, category_service, product_service):
    """A category with three sub-categories, each holding a tag and a product."""
    category = category_service.new_category(db, CategoryCreate(name="Furniture"))
    sub_category_ids = []
    for name in ("Chairs", "Desks", "Lamps"):
        sub_category = category_service.add_sub_category(db, category.id, SubCategoryCreate(name=name))
        product_service.create_product(
            db, sub_category.id, ProductCreate(name=f"{name} item", current_price=50.0, quantity=3)
        )
        sub_category_ids.append(sub_category.id)
    db.add_all([SubCategoryTag(name="home", sub_category_id=sid) for sid in sub_category_ids])
    db.commit()
    return {"category_id": category.id, "sub_category_ids": sub_category_ids}


class TestCategoryService:
    def test_new_category(self, db, category_service):
        category = category_service.new_category(db, CategoryCreate(name="Books", icon="book"))

        assert category.id is not None
        assert category_service.get_total_categories(db) == 1
        assert category_service.get_category_by_id(db, category.id).icon == "book"

    def test_duplicate_category_name(self, db, catalog, category_service):
        with pytest.raises(ConflictError):
            category_service.new_category(db, CategoryCreate(name="Electronics"))

    def test_duplicate_sub_category_name(self, db, catalog, category_service):
        with pytest.raises(ConflictError):
            category_service.add_sub_category(db, catalog["category_id"], SubCategoryCreate(name="Computers"))

    def test_update_category(self, db, catalog, category_service):
        category = category_service.update_category(
            db, catalog["category_id"], CategoryUpdate(name="Gadgets", description="Small devices")
        )

        assert category.name == "Gadgets"
        assert category.description == "Small devices"
        assert category.updated_at is not None

    def test_unknown_category(self, db, category_service):
        with pytest.raises(NotFoundError, match="Category with id 12 not found"):
            category_service.get_category_by_id(db, 12)

    def test_search_is_case_insensitive(self, db, catalog, furniture, category_service):
        matches = category_service.search_by_name(db, "ELEC")

        assert [category.name for category in matches] == ["Electronics"]
        assert [sub.name for sub in matches[0].sub_categories] == ["Computers"]
        assert len(matches[0].sub_categories[0].products) == 3

    def test_search_respects_take(self, db, catalog, furniture, category_service):
        assert len(category_service.search_by_name(db, "e", take=1)) == 1

    def test_matching_names(self, db, catalog, furniture, category_service):
        assert category_service.get_matching_by_names(db, "ur") == ["Furniture"]
        assert category_service.get_matching_by_names(db, "missing") == []


class TestDeleteCategory:
    def test_deletes_each_sub_category_then_the_category(
        self, db, furniture, category_service, sub_category_service, monkeypatch
    ):
        deleted = []
        delete_sub_category = sub_category_service.delete_sub_category

        def spy(session, sub_category_id):
            deleted.append(sub_category_id)
            delete_sub_category(session, sub_category_id)

        monkeypatch.setattr(sub_category_service, "delete_sub_category", spy)

        category_service.delete_category(db, furniture["category_id"])

        assert deleted == furniture["sub_category_ids"]
        assert db.query(Category).count() == 0
        assert db.query(SubCategory).count() == 0
        assert db.query(SubCategoryTag).count() == 0

    def test_products_survive_detached(self, db, furniture, category_service):
        category_service.delete_category(db, furniture["category_id"])

        db.expire_all()
        products = db.query(Product).all()
        assert len(products) == 3
        assert all(product.sub_category_id is None for product in products)

    def test_failure_midway_rolls_back(
        self, db, furniture, category_service, sub_category_service, monkeypatch
    ):
        delete_sub_category = sub_category_service.delete_sub_category
        calls = []

        def failing(session, sub_category_id):
            calls.append(sub_category_id)
            if len(calls) == 2:
                raise NotFoundError(f"SubCategory with id {sub_category_id} not found")
            delete_sub_category(session, sub_category_id)

        monkeypatch.setattr(sub_category_service, "delete_sub_category", failing)

        with pytest.raises(NotFoundError):
            category_service.delete_category(db, furniture["category_id"])

        db.expire_all()
        assert db.query(Category).count() == 1
        assert db.query(SubCategory).count() == 3

    def test_unknown_category(self, db, category_service):
        with pytest.raises(NotFoundError):
            category_service.delete_category(db, 404)


class TestSubCategoryService:
    def test_update_sub_category(self, db, catalog, sub_category_service):
        sub_category = sub_category_service.update_sub_category(
            db, catalog["sub_category_id"], SubCategoryUpdate(description="Laptops", references=[1, 2])
        )

        assert sub_category.description == "Laptops"
        assert sub_category.references == [1, 2]
        assert sub_category.name == "Computers"

    def test_rename_to_taken_name(self, db, catalog, furniture, sub_category_service):
        with pytest.raises(ConflictError):
            sub_category_service.update_sub_category(
                db, catalog["sub_category_id"], SubCategoryUpdate(name="Desks")
            )

    def test_tags(self, db, catalog, sub_category_service):
        tag = sub_category_service.add_tag(db, catalog["sub_category_id"], "gaming")
        names = [t.name for t in sub_category_service.get_sub_category_by_id(db, catalog["sub_category_id"]).sub_category_tags]
        assert names == ["laptops", "gaming"]

        sub_category_service.remove_tag(db, catalog["sub_category_id"], tag.id)

        db.expire_all()
        assert db.query(SubCategoryTag).filter(SubCategoryTag.name == "gaming").count() == 0

    def test_remove_unknown_tag(self, db, catalog, sub_category_service):
        with pytest.raises(NotFoundError):
            sub_category_service.remove_tag(db, catalog["sub_category_id"], 999)

    def test_remove_sub_category(self, db, catalog, sub_category_service):
        sub_category_service.remove_sub_category(db, catalog["sub_category_id"])

        assert db.query(SubCategory).count() == 0
        assert db.query(SubCategoryTag).count() == 0
        assert db.query(Product).count() == 3

    def test_remove_unknown_sub_category(self, db, sub_category_service):
        with pytest.raises(NotFoundError):
            sub_category_service.remove_sub_category(db, 31)


class TestProductService:
    def test_create_product_with_tags(self, db, catalog, product_service):
        product = product_service.create_product(
            db, catalog["sub_category_id"],
            ProductCreate(name="Tablet", current_price=300.0, quantity=4, tags=["mobile", "touch"])
        )

        assert product.in_stock is True
        assert [tag.name for tag in product.product_tags] == ["mobile", "touch"]

    def test_create_product_in_unknown_sub_category(self, db, product_service):
        with pytest.raises(NotFoundError):
            product_service.create_product(db, 77, ProductCreate(name="Ghost", current_price=1.0))

    def test_price_change_keeps_previous_price(self, db, catalog, product_service):
        product = product_service.update_product(db, catalog["laptop_id"], ProductUpdate(current_price=12.0))

        assert product.current_price == 12.0
        assert product.previous_price == 10.0

    def test_delete_product(self, db, catalog, product_service):
        product_service.delete_product(db, catalog["cable_id"])

        with pytest.raises(NotFoundError):
            product_service.get_product_by_id(db, catalog["cable_id"])

    def test_shop_products_take(self, db, catalog, product_service):
        assert len(product_service.get_shop_products(db)) == 3
        assert len(product_service.get_shop_products(db, take=2)) == 2

    def test_products_by_tag(self, db, catalog, product_service):
        products = product_service.get_products_by_tag_name(db, "accessories")

        assert [product.name for product in products] == ["Mouse", "Cable"]

    def test_price_range(self, db, catalog, product_service):
        products = product_service.filter_by_range_price(db, 2.0, 10.0)

        assert [product.name for product in products] == ["Mouse", "Laptop"]

    def test_inverted_price_range(self, db, catalog, product_service):
        with pytest.raises(BadRequestError):
            product_service.filter_by_range_price(db, 10.0, 2.0)

    def test_stock_filter(self, db, catalog, product_service):
        in_stock = product_service.filter_by_existence_in_stock(db, limit=10, in_stock=True)
        sold_out = product_service.filter_by_existence_in_stock(db, limit=10, in_stock=False)

        assert {product.name for product in in_stock} == {"Laptop", "Mouse"}
        assert [product.name for product in sold_out] == ["Cable"]

    def test_reserve_stock_is_conditional(self, db, catalog, product_service):
        assert product_service.reserve_stock(db, catalog["mouse_id"], 5) is True
        assert product_service.reserve_stock(db, catalog["mouse_id"], 1) is False
        db.commit()

        assert product_service.get_product_by_id(db, catalog["mouse_id"]).quantity == 0

    def test_sales_totals(self, db, catalog, product_service):
        product_service.record_sale(db, catalog["laptop_id"], 3)
        product_service.record_sale(db, catalog["mouse_id"], 1)
        db.commit()

        assert product_service.get_total_sales(db) == 4
        assert product_service.get_most_sales_products(db, take=1)[0].name == "Laptop"
        assert product_service.get_total_products(db) == 3

    def test_current_month_products(self, db, catalog, product_service):
        cable = db.get(Product, catalog["cable_id"])
        cable.created_at = datetime.utcnow().replace(day=1) - timedelta(days=1)
        db.commit()

        products = product_service.get_current_month_products(db)

        assert {product.name for product in products} == {"Laptop", "Mouse"}
        assert {tag.name for product in products for tag in product.product_tags} == {"computers", "accessories"}

    def test_current_month_products_are_capped(self, db, catalog, product_service):
        db.add_all([
            Product(name=f"Gadget {n}", current_price=1.0, quantity=1, sales=0, sub_category_id=catalog["sub_category_id"])
            for n in range(15)
        ])
        db.commit()

        assert len(product_service.get_current_month_products(db)) == 16
        assert len(product_service.get_current_month_products(db, take=4)) == 4
