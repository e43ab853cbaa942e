# checkout/product_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Product Service (dev mock)")


PRODUCTS = {
    1: {"id": 1, "name": "Keyboard", "price": 199.99, "inventory": 25, "variants": []},
    2: {
        "id": 2,
        "name": "Mouse",
        "price": 49.50,
        "inventory": 100,
        "variants": [
            {"id": 21, "name": "Black", "price": 49.50, "inventory": 60},
            {"id": 22, "name": "White", "price": 54.00, "inventory": 40},
        ],
    },
    3: {"id": 3, "name": "Monitor", "price": 899.00, "inventory": 5, "variants": []},
    4: {"id": 4, "name": "Cable", "price": 7.25, "inventory": 500, "variants": []},
}


@app.get("/products/{product_id}")
def get_product(product_id: int):
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
