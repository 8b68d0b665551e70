"""
Data management endpoints
"""

from datetime import date

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .dependencies import LendingSystem, get_lending_system
from ..logging_config import get_logger, log_action


router = APIRouter()
logger = get_logger("lending.api.data")


@router.get("/backup")
async def download_backup(system: LendingSystem = Depends(get_lending_system)):
    """Download clients, loans and open requests as one JSON file"""
    backup = system.sync().backup_snapshot(system.config.business_name)
    data = backup["data"]
    log_action(logger, "info", "Backup exported", action="export_backup",
               extra={table: len(rows) for table, rows in data.items()})
    return JSONResponse(
        content=backup,
        headers={"Content-Disposition": f'attachment; filename="backup_{date.today().isoformat()}.json"'}
    )
