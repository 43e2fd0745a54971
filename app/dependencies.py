# app/dependencies.py

from fastapi import Request

from app.logic import PortfolioService


# Dependency to get the service built for this application
def get_service(request: Request) -> PortfolioService:
    return request.app.state.service
