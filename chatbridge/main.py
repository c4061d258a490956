# Run from project root: uvicorn chatbridge.main:app --reload

import logging

from fastapi import FastAPI

from chatbridge.api.routes import router

logging.basicConfig(level=logging.INFO)


app = FastAPI(title="Bedrock Agent Bridge")
app.include_router(router)


if __name__ == "__main__":
    print("Bedrock agent bridge booting...")
