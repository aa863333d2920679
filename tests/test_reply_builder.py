import unittest

from pydantic import ValidationError

from cartbot import constants as C
from cartbot.cart_models import Cart, CartItem
from cartbot.catalog import Catalog, CatalogMiss, stable_item_id
from cartbot.intent_router import (
    AddItem,
    EchoDefault,
    RemoveItem,
    ShowCart,
    ShowCatalog,
    ShowHelp,
    ShowHours,
)
from cartbot.reply_builder import (
    Card,
    CarouselReply,
    SingleCardReply,
    TextReply,
    build_reply,
    default_menu,
    fallback_text,
)

SHOES = {
    "Blue Running Shoes": "https://example.test/blue.jpg",
    "Neon Running Shoes": "https://example.test/neon.jpg",
    "Pink Running Shoes": "https://example.test/pink.jpg",
    "Teal Running Shoes": "https://example.test/teal.jpg",
    "White Running Shoes": "https://example.test/white.jpg",
}
BLUE = stable_item_id("Blue Running Shoes")
PINK = stable_item_id("Pink Running Shoes")


def labels(suggestions):
    return [s.text for s in suggestions]


class TestDefaultMenu(unittest.TestCase):
    def test_empty_cart_menu(self):
        menu = default_menu(Cart(cart_id="c"))
        self.assertEqual(labels(menu), [C.SHOP_TEXT, C.HOURS_TEXT, C.HELP_TEXT])
        self.assertEqual([s.postback_data for s in menu], ["shop", "hours", "help"])

    def test_non_empty_cart_menu(self):
        menu = default_menu(Cart(cart_id="c", items=(CartItem(BLUE, "Blue Running Shoes", 1),)))
        self.assertEqual(
            labels(menu),
            [C.VIEW_CART_TEXT, C.CONTINUE_SHOPPING_TEXT, C.HOURS_TEXT, C.HELP_TEXT],
        )
        self.assertEqual([s.postback_data for s in menu], ["cart", "shop", "hours", "help"])


class TestBuildReply(unittest.TestCase):
    def setUp(self):
        self.catalog = Catalog.from_mapping(SHOES)
        self.empty = Cart(cart_id="c")
        self.one = Cart(cart_id="c", items=(CartItem(BLUE, "Blue Running Shoes", 2),))
        self.two = Cart(cart_id="c", items=(
            CartItem(BLUE, "Blue Running Shoes", 2),
            CartItem(PINK, "Pink Running Shoes", 1),
        ))

    def test_canned_text_replies(self):
        cases = [
            (ShowHelp(), C.RSP_HELP_TEXT),
            (ShowHours(), C.RSP_HOURS_TEXT),
            (EchoDefault(), C.RSP_DEFAULT),
        ]
        for action, text in cases:
            reply = build_reply(action, self.empty, self.catalog)
            self.assertIsInstance(reply, TextReply)
            self.assertEqual(reply.text, text)
            self.assertEqual(labels(reply.suggestions), [C.SHOP_TEXT, C.HOURS_TEXT, C.HELP_TEXT])

    def test_catalog_carousel(self):
        reply = build_reply(ShowCatalog(), self.empty, self.catalog)
        self.assertIsInstance(reply, CarouselReply)
        self.assertEqual(len(reply.cards), 5)
        self.assertEqual(reply.card_width, "MEDIUM")
        for card, item in zip(reply.cards, self.catalog.list()):
            self.assertEqual(card.title, item.title)
            self.assertEqual(card.media_url, item.media_url)
            self.assertEqual(labels(card.suggestions), [C.ADD_ITEM_TEXT])
            self.assertEqual(card.suggestions[0].postback_data, f"add-cart-{item.id}")
        self.assertEqual(labels(reply.suggestions), [C.SHOP_TEXT, C.HOURS_TEXT, C.HELP_TEXT])

    def test_single_item_catalog_uses_single_card(self):
        catalog = Catalog.from_mapping({"Hat": "https://example.test/hat.jpg"})
        reply = build_reply(ShowCatalog(), self.empty, catalog)
        self.assertIsInstance(reply, SingleCardReply)
        self.assertEqual(reply.card.title, "Hat")

    def test_empty_catalog_uses_text(self):
        reply = build_reply(ShowCatalog(), self.empty, Catalog([]))
        self.assertIsInstance(reply, TextReply)
        self.assertEqual(reply.text, C.RSP_EMPTY_CATALOG)

    def test_empty_cart_falls_back_to_text(self):
        reply = build_reply(ShowCart(), self.empty, self.catalog)
        self.assertIsInstance(reply, TextReply)
        self.assertEqual(reply.text, C.RSP_EMPTY_CART)
        self.assertEqual(labels(reply.suggestions), [C.SHOP_TEXT, C.HOURS_TEXT, C.HELP_TEXT])

    def test_single_item_cart(self):
        reply = build_reply(ShowCart(), self.one, self.catalog)
        self.assertIsInstance(reply, SingleCardReply)
        self.assertEqual(reply.card.title, "Blue Running Shoes")
        self.assertEqual(reply.card.description, "Quantity: 2")
        self.assertEqual(reply.card.media_url, SHOES["Blue Running Shoes"])
        self.assertEqual(labels(reply.card.suggestions), [C.INCREMENT_COUNT_TEXT, C.DECREMENT_COUNT_TEXT])
        self.assertEqual(
            [s.postback_data for s in reply.card.suggestions],
            [f"add-cart-{BLUE}", f"del-cart-{BLUE}"],
        )
        self.assertEqual(
            labels(reply.suggestions),
            [C.VIEW_CART_TEXT, C.CONTINUE_SHOPPING_TEXT, C.HOURS_TEXT, C.HELP_TEXT],
        )

    def test_multi_item_cart_uses_carousel_in_cart_order(self):
        reply = build_reply(ShowCart(), self.two, self.catalog)
        self.assertIsInstance(reply, CarouselReply)
        self.assertEqual([c.title for c in reply.cards], ["Blue Running Shoes", "Pink Running Shoes"])
        self.assertEqual([c.description for c in reply.cards], ["Quantity: 2", "Quantity: 1"])

    def test_cart_item_missing_from_catalog_keeps_title(self):
        cart = Cart(cart_id="c", items=(CartItem("gone", "Retired Sandals", 1),))
        reply = build_reply(ShowCart(), cart, self.catalog)
        self.assertIsInstance(reply, SingleCardReply)
        self.assertEqual(reply.card.title, "Retired Sandals")
        self.assertIsNone(reply.card.media_url)

    def test_add_and_remove_acknowledgements(self):
        reply = build_reply(AddItem(BLUE), self.one, self.catalog)
        self.assertEqual(reply.text, "Blue Running Shoes have been added to your cart.")
        reply = build_reply(RemoveItem(BLUE), self.empty, self.catalog)
        self.assertEqual(reply.text, "Blue Running Shoes have been deleted from your cart.")
        self.assertEqual(labels(reply.suggestions), [C.SHOP_TEXT, C.HOURS_TEXT, C.HELP_TEXT])

    def test_unknown_item_raises(self):
        with self.assertRaises(CatalogMiss):
            build_reply(AddItem("unknown"), self.empty, self.catalog)


class TestFallbackText(unittest.TestCase):
    def test_text_reply(self):
        self.assertEqual(fallback_text(TextReply(text="hi")), "hi")

    def test_single_card(self):
        card = Card(title="Shoe", description="Quantity: 1", media_url="https://example.test/s.jpg")
        self.assertEqual(
            fallback_text(SingleCardReply(card=card)),
            "Shoe\n\nQuantity: 1\n\nhttps://example.test/s.jpg",
        )

    def test_carousel_separates_cards(self):
        reply = CarouselReply(cards=[
            Card(title="A", media_url="https://example.test/a.jpg"),
            Card(title="B", media_url="https://example.test/b.jpg"),
        ])
        text = fallback_text(reply)
        self.assertEqual(text.count(C.FALLBACK_CARD_RULE), 2)
        self.assertLess(text.index("A"), text.index("B"))
        self.assertIn("https://example.test/b.jpg", text)

    def test_carousel_needs_two_cards(self):
        with self.assertRaises(ValidationError):
            CarouselReply(cards=[Card(title="only")])


if __name__ == "__main__":
    unittest.main()
