from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError

from video_knowledge.api.routes.graph import router as graph_router
from video_knowledge.api.routes.search import router as search_router
from video_knowledge.api.routes.videos import router as videos_router

app = FastAPI(
    title="Video Knowledge API",
    description="Semantic search and related-moment discovery over video transcripts",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
    ],
    allow_origin_regex=r"https://.*\.vercel\.app|http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(search_router)
app.include_router(videos_router)
app.include_router(graph_router)


@app.exception_handler(APIError)
async def database_error_handler(request: Request, exc: APIError) -> JSONResponse:
    # Return JSON rather than a bare 500 so the browser still gets CORS headers.
    return JSONResponse(status_code=500, content={"detail": f"Database error: {exc.message}"})


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
