from fastapi import FastAPI, APIRouter, HTTPException, Depends, Body
from starlette.middleware.cors import CORSMiddleware
import asyncio
import logging
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Dict, Any
import uvicorn

from converter_settings import ConverterConfig, setup_logging
from inventory_agent import InventoryUnitConverter
from unit_conversion_engine import ConversionError, ConversionMasterNotLoadedError

config = ConverterConfig.from_env()
agent = InventoryUnitConverter(config)

logger = logging.getLogger(__name__)

app = FastAPI(title="Inventory Unit Converter")

# ==================== CORS CONFIGURATION ====================
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=config.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "Accept",
        "Origin",
    ],
    max_age=600,  # Cache preflight for 10 minutes
)

api_router = APIRouter(prefix="/api")


def get_agent() -> InventoryUnitConverter:
    return agent


# ==================== MODELS ====================

class ConvertRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    items: List[Dict[str, Any]]
    target_unit: str = Field(alias="targetUnit")


def _conversion_http_error(e: ConversionError) -> HTTPException:
    if isinstance(e, ConversionMasterNotLoadedError):
        return HTTPException(status_code=503, detail=e.message)
    return HTTPException(status_code=400, detail=e.message)


# ==================== ROUTES ====================

@api_router.get("/health")
async def health_check(converter: InventoryUnitConverter = Depends(get_agent)):
    """Currently loaded conversion master version and run state"""
    return converter.get_health()


@api_router.get("/status")
async def get_status(converter: InventoryUnitConverter = Depends(get_agent)):
    return converter.get_status()


@api_router.post("/webhook/inventory")
async def receive_inventory(
    data: Any = Body(...),
    converter: InventoryUnitConverter = Depends(get_agent)
):
    """Standardize a pushed inventory batch. Item failures are reported per item."""
    logger.info("Received inventory data via webhook")
    try:
        result = converter.process_inventory_data(data)
    except ConversionError as e:
        logger.error(f"Webhook processing error: {e.message}")
        raise _conversion_http_error(e)
    return {"success": True, "result": result}


@api_router.post("/convert")
async def convert(
    request: ConvertRequest,
    converter: InventoryUnitConverter = Depends(get_agent)
):
    """Convert all items to one target unit. Any failing item fails the request."""
    try:
        result = converter.convert_units(request.items, request.target_unit)
    except ConversionError as e:
        logger.error(f"Conversion API error: {e.message}")
        raise _conversion_http_error(e)
    return {"success": True, "result": result}


@api_router.post("/conversion-master/reload")
async def reload_conversion_master(converter: InventoryUnitConverter = Depends(get_agent)):
    try:
        table = converter.reload_conversion_master()
    except (FileNotFoundError, ConversionError) as e:
        logger.error(f"Failed to reload conversion master: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {
        "success": True,
        "version": table.version,
        "supportedUnits": list(table.supported_units)
    }


app.include_router(api_router)


@app.on_event("startup")
async def startup_event():
    setup_logging(config)
    await agent.initialize()
    logger.info(f"Webhook server running on port {config.webhook_port}")
    logger.info(f"Watching directory: {config.data_directory}")


@app.on_event("shutdown")
async def shutdown_event():
    await agent.stop()


def run():
    """Start the agent: HTTP server + watcher, or watcher only when the webhook is disabled"""
    setup_logging(config)
    if config.enable_webhook:
        uvicorn.run(app, host="0.0.0.0", port=config.webhook_port)
    else:
        try:
            asyncio.run(agent.run_forever())
        except KeyboardInterrupt:
            logger.info("Shutting down InventoryUnitConverter agent...")


if __name__ == "__main__":
    run()
