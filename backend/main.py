from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from backend.api.endpoints import router as api_router
from agent.executor import get_executor
from agent.interpreter import get_session

app = FastAPI(title="Tool Agent API")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("shutdown")
async def on_shutdown():
    await get_executor().shutdown()
    await get_session().shutdown()

app.include_router(api_router, prefix="/api")

@app.get("/")
async def root():
    return {"message": "Tool Agent API is running"}
