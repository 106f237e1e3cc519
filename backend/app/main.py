"""
Main FastAPI application entry point.
"""
import logging
import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.api import offers, pricing, routing, shipping
from app.db.database import engine, Base

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="JISWAY Back Office",
    description="Procurement routing, dynamic pricing and carrier selection for the JIS fastener store",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # admin UI dev servers
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(pricing.router, prefix="/api/pricing", tags=["pricing"])
app.include_router(routing.router, prefix="/api/routing", tags=["routing"])
app.include_router(shipping.router, prefix="/api/shipping", tags=["shipping"])
app.include_router(offers.router, prefix="/api/offers", tags=["offers"])


@app.get("/")
async def root():
    return {"message": "JISWAY Back Office API"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
