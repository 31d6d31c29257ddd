"""
Loan product endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import LendingSystem, get_lending_system
from .schemas import CreateLoanProductRequest
from ..exceptions import NotFoundError


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan_product(
    request: CreateLoanProductRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Create a loan product"""
    try:
        config = request.to_config()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    product = system.product_engine.create_product(config)
    return {
        "product_id": product.id,
        "message": "Loan product created successfully"
    }


@router.get("")
async def list_loan_products(system: LendingSystem = Depends(get_lending_system)):
    """List loan products"""
    return {"products": [product.to_dict() for product in system.product_engine.list_products()]}


@router.get("/{product_id}")
async def get_loan_product(
    product_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan product details"""
    product = system.product_engine.get_product(product_id)
    if not product:
        raise NotFoundError("loan product", product_id)
    return product.to_dict()
