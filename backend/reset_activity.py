import requests
import os
from dotenv import load_dotenv

# Optional: Load from .env
load_dotenv()
BASE_URL = os.getenv("BACKEND_URL", "http://localhost:8000")

ACTIVITIES_URL = f"{BASE_URL}/activities"
HEALTH_URL = f"{BASE_URL}/health"

def check_health():
    try:
        response = requests.get(HEALTH_URL, timeout=5)
        response.raise_for_status()
        print("✅ Service status:", response.json().get("status", "unknown"))
        return True
    except requests.exceptions.RequestException as e:
        print("❌ Service not reachable:", str(e))
        return False

def reset_activities():
    try:
        response = requests.delete(ACTIVITIES_URL, timeout=10)
        response.raise_for_status()
        print("✅ Activity reset successful:", response.json().get("message", "OK"))
    except requests.exceptions.RequestException as e:
        print("❌ Failed to reset activities:", str(e))

if __name__ == "__main__":
    if check_health():
        reset_activities()
