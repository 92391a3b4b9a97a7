# pawcart/catalog_service/main.py
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

app = FastAPI(title="Catalog / Account Service (dev mock)")


PRODUCTS = {
    "P1": {"productID": "P1", "pName": "Dog Food 5kg", "pPrice": 100, "pQuantity": 3, "status": "Active"},
    "P2": {"productID": "P2", "pName": "Cat Litter", "pPrice": 450, "pQuantity": 20, "status": "Active"},
    "P3": {"productID": "P3", "pName": "Flea Collar", "pPrice": 1200, "pQuantity": 0, "status": "Active"},
    "P4": {"productID": "P4", "pName": "Bird Cage", "pPrice": 5400, "pQuantity": 2, "status": "Inactive"},
}

ACCOUNTS = {
    "u1": {"loyalty_points": 42},
    "u2": {"loyalty_points": 0},
}

APPOINTMENTS = [
    {"user_id": "u1", "package": "Premium", "points_awarded": 10},
    {"user_id": "u1", "package": "Luxury", "points_awarded": 15},
    {"user_id": "u2", "package": "Basic", "points_awarded": 5},
]


class DeductIn(BaseModel):
    points: int = Field(..., ge=0)


@app.get("/products/{product_ref}")
def get_product(product_ref: str):
    product = PRODUCTS.get(product_ref)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.get("/accounts/{account_ref}")
def get_account(account_ref: str):
    account = ACCOUNTS.get(account_ref)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return {"user": {"id": account_ref, **account}}


@app.post("/accounts/{account_ref}/points/deduct")
def deduct_points(account_ref: str, payload: DeductIn):
    account = ACCOUNTS.get(account_ref)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    #never below 0
    account["loyalty_points"] = max(0, account["loyalty_points"] - payload.points)
    return {"id": account_ref, "loyalty_points": account["loyalty_points"]}


@app.get("/appointments/owner/{account_ref}")
def owner_appointments(account_ref: str):
    return [a for a in APPOINTMENTS if a["user_id"] == account_ref]


@app.get("/appointments")
def all_appointments():
    return APPOINTMENTS
