from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
import base64
import re
import uuid

app = FastAPI(title="Mock Daraja Server", version="1.0.0")

CONSUMER_KEY = "test-key"
CONSUMER_SECRET = "test-secret"
ACCESS_TOKEN = "mock-access-token"
PASSKEY = "test-passkey"

# Numbers ending in 000 are treated as unknown subscribers
REJECTED_SUFFIX = "000"

@app.get("/health")
def health(): return {"status": "ok"}

@app.get("/oauth/v1/generate")
def generate_token(grant_type: str, authorization: str = Header(default="")):
    expected = base64.b64encode(f"{CONSUMER_KEY}:{CONSUMER_SECRET}".encode()).decode()
    if grant_type != "client_credentials" or authorization != f"Basic {expected}":
        raise HTTPException(status_code=400, detail="invalid credentials")
    return {"access_token": ACCESS_TOKEN, "expires_in": "3599"}

@app.post("/mpesa/stkpush/v1/processrequest")
async def stk_push(request: Request, authorization: str = Header(default="")):
    if authorization != f"Bearer {ACCESS_TOKEN}":
        return JSONResponse(status_code=401, content={"errorCode": "404.001.03", "errorMessage": "Invalid Access Token"})

    body = await request.json()
    phone = str(body.get("PhoneNumber", ""))
    if not re.match(r"^254\d{9}$", phone) or phone.endswith(REJECTED_SUFFIX):
        return JSONResponse(status_code=400, content={"errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid PhoneNumber"})

    expected_password = base64.b64encode(f"{body.get('BusinessShortCode')}{PASSKEY}{body.get('Timestamp')}".encode()).decode()
    if body.get("Password") != expected_password:
        return JSONResponse(status_code=400, content={"errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid Password"})

    return {
        "MerchantRequestID": f"mock-{uuid.uuid4().hex[:8]}",
        "CheckoutRequestID": f"ws_CO_{uuid.uuid4().hex[:16]}",
        "ResponseCode": "0",
        "ResponseDescription": "Success. Request accepted for processing",
        "CustomerMessage": "Success. Request accepted for processing",
    }
