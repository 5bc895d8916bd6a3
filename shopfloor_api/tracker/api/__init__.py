"""HTTP surface: FastAPI application and routers."""
