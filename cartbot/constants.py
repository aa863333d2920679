from __future__ import annotations

# Postback tokens understood by the intent router
DELETE_ITEM_COMMAND = "del-cart-"
ADD_ITEM_COMMAND = "add-cart-"
VIEW_CART_COMMAND = "cart"
HOURS_COMMAND = "hours"
SHOP_COMMAND = "shop"
HELP_COMMAND = "help"
HELP_PATTERN = r"help.*|commands\s.*|see the help menu"

# Suggestion chip labels
VIEW_CART_TEXT = "View Cart"
CONTINUE_SHOPPING_TEXT = "Continue Shopping"
SHOP_TEXT = "Shop Our Collection"
HOURS_TEXT = "Inquire About Hours"
HELP_TEXT = "Help"
ADD_ITEM_TEXT = "\U0001F6D2 Add to Cart"
INCREMENT_COUNT_TEXT = "➕"
DECREMENT_COUNT_TEXT = "➖"

# Canned replies
RSP_DEFAULT = "Sorry, I didn't quite get that. Perhaps you were looking for one of these options?"
RSP_HOURS_TEXT = "We are open Monday - Friday from 9 A.M. to 5 P.M."
RSP_EMPTY_CART = "Your cart is empty. Take a look at our collection to get started!"
RSP_EMPTY_CATALOG = "Our collection is empty right now. Please check back soon."
RSP_HELP_TEXT = (
    "Welcome to the help menu! The supported commands are: \n\n"
    "Help - Shows the list of supported commands and functions\n\n"
    "Inquire About Hours - Will respond with the times that our store is open.\n\n"
    "Shop Our Collection/Continue Shopping - Will respond with a collection of"
    " inventory items.\n\n"
    "View Cart - Will respond with all of the items in your cart.\n\n"
)
RSP_ITEM_ADDED = "{title} have been added to your cart."
RSP_ITEM_DELETED = "{title} have been deleted from your cart."

FALLBACK_CARD_RULE = "---------------------------------------------"
