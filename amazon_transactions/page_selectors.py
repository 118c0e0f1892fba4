# Transactions view (cpe/yourpayments/transactions)
TRANSACTION_ENTRY = "[data-testid='transaction-link']"
TRANSACTION_CONTENT = "[data-testid='transaction-link-content-wrapper']"
PRIMARY_TEXT = "span[data-testid='text'], div[data-testid='text']"
METHOD_NAME = "[data-testid='method-details-name']"
METHOD_PREFIX = "[data-testid='method-details-prefix']"
METHOD_NUMBER = "[data-testid='method-details-number']"
# Candidates scanned in document order for the order number and the amount.
TEXT_CANDIDATES = "[data-testid='text'], span, div"

# Order details page
ORDER_DETAILS_PATH = "/your-orders/order-details"
ITEM_TITLE_COMPONENT = "itemTitle"
PRODUCT_LINK_CLASS = "a-link-normal"
PRODUCT_HREF_MARKER = "/dp/"

# Injected trigger
EXPORT_BUTTON_ID = "amazon-txn-csv-export-btn"
EXPORT_BINDING = "__amazonTxnExport"
