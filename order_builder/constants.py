CATEGORIES = ("Wall Panel", "Flooring", "Adhesive", "Accessories")
TAB_ALL = "ALL"
SUB_ALL = "All"
TABS = (TAB_ALL,) + CATEGORIES

# свободный текст из API -> одна из вкладок
CATEGORY_ALIASES = {
    "wall panel": "Wall Panel",
    "wall": "Wall Panel",
    "panels": "Wall Panel",
    "panel": "Wall Panel",
    "flooring": "Flooring",
    "floor": "Flooring",
    "adhesive": "Adhesive",
    "glue": "Adhesive",
    "adhesives": "Adhesive",
    "accessory": "Accessories",
    "accessories": "Accessories",
    "trim": "Accessories",
    "tools": "Accessories",
}
DEFAULT_CATEGORY = "Accessories"
DEFAULT_SUB = "General"
DEFAULT_PRODUCT_NAME = "Product"
DEFAULT_THUMBNAIL = "/product-thumbnail.png"

# code -> (label, kg, m3)
CONTAINERS = {
    "20": ("20'", 28000.0, 28.0),
    "40": ("40'", 28000.0, 68.0),
}

ORDER_COLUMNS = (
    "Category",
    "Name",
    "Size",
    "Thickness",
    "Color",
    "Pcs/Box",
    "Boxes",
    "Total Pcs",
    "Box/Kg",
    "Box/m3",
    "Total Kg",
    "Total m3",
    "SKU",
)

CSV_FILENAME = "order.csv"
PDF_FILENAME = "order.pdf"
