"""
Unit Tests - Demo Workspace Generator
"""
from datetime import date, datetime

from opsboard.data.generators import DemoWorkspaceGenerator

END = date(2025, 1, 31)


class TestDemoWorkspaceGenerator:
    """Tests for DemoWorkspaceGenerator"""

    def test_same_seed_same_workspace(self):
        """Test the same seed reproduces ids and figures"""
        first = DemoWorkspaceGenerator(seed=7).generate(END, days=5)
        second = DemoWorkspaceGenerator(seed=7).generate(END, days=5)

        assert first.workspace_id == second.workspace_id
        assert first.counts() == second.counts()
        assert [o["id"] for o in first.orders] == [o["id"] for o in second.orders]
        assert [o["total"] for o in first.orders] == [o["total"] for o in second.orders]

    def test_different_seed_differs(self):
        """Test another seed produces another workspace"""
        first = DemoWorkspaceGenerator(seed=1).generate(END, days=3)
        second = DemoWorkspaceGenerator(seed=2).generate(END, days=3)

        assert first.workspace_id != second.workspace_id

    def test_orders_fall_inside_range(self):
        """Test every order is placed within the generated days"""
        dataset = DemoWorkspaceGenerator(seed=3, orders_per_day=(2, 4)).generate(END, days=4)

        assert dataset.start == date(2025, 1, 28)
        assert all(datetime(2025, 1, 28) <= o["ordered_at"] < datetime(2025, 2, 1) for o in dataset.orders)
        assert 8 <= len(dataset.orders) <= 16

    def test_rows_are_linked(self):
        """Test items point at generated orders and products, and every order is paid for"""
        dataset = DemoWorkspaceGenerator(seed=5, n_products=6).generate(END, days=3)

        order_ids = {o["id"] for o in dataset.orders}
        product_ids = {p["id"] for p in dataset.products}
        assert all(i["order_id"] in order_ids and i["product_id"] in product_ids for i in dataset.order_items)
        linked_fees = {f["order_id"] for f in dataset.fees if f["order_id"] is not None}
        assert linked_fees == order_ids
        assert len(dataset.inventory) == 6 * 3
        assert all("price" not in p for p in dataset.products)

    def test_order_total_matches_parts(self):
        """Test totals are subtotal plus tax plus shipping and subtotal is the line sum"""
        dataset = DemoWorkspaceGenerator(seed=11).generate(END, days=2)

        for o in dataset.orders:
            lines = [i["total"] for i in dataset.order_items if i["order_id"] == o["id"]]
            assert o["subtotal"] == sum(lines)
            assert o["total"] == o["subtotal"] + o["tax"] + o["shipping"]

    def test_frames_and_csv(self, tmp_path):
        """Test the dataset exports a CSV per non-empty table"""
        dataset = DemoWorkspaceGenerator(seed=9, n_products=4, orders_per_day=(1, 2)).generate(END, days=2)

        frames = dataset.to_frames()
        dataset.save_csv(tmp_path / "demo")

        assert frames["orders"].height == len(dataset.orders)
        written = {p.name for p in (tmp_path / "demo").iterdir()}
        assert {"products.csv", "locations.csv", "orders.csv", "order_items.csv", "inventory.csv"} <= written
