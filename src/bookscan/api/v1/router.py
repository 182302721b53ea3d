# src/bookscan/api/v1/router.py
from fastapi import APIRouter

from bookscan.api.v1 import books, lookup, scans

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(scans.router)
api_router.include_router(books.router)
api_router.include_router(lookup.router)
