from fastapi import FastAPI
from kubecheck.api.routes import check
from kubecheck.api.middleware import AuthMiddleware
from dotenv import load_dotenv

load_dotenv()
app = FastAPI(title="kubecheck")
app.add_middleware(AuthMiddleware)

app.include_router(check.router)
