"""
Configuration module for Gradle Flow.
Loads settings from environment variables or .env file.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# --- Persistence ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///gradleflow.db")    # Execution history database
MAX_HISTORY_ENTRIES = int(os.getenv("MAX_HISTORY_ENTRIES", "50"))      # Entries kept, newest first
MAX_LOGS_PER_ENTRY = int(os.getenv("MAX_LOGS_PER_ENTRY", "100"))       # Log lines kept per entry

# --- Execution ---
EXECUTION_MODE = os.getenv("EXECUTION_MODE", "simulated")              # "simulated" | "gradle"
GRADLE_EXECUTABLE = os.getenv("GRADLE_EXECUTABLE", "gradle")           # e.g. ./gradlew
PROJECT_DIR = os.getenv("PROJECT_DIR") or None                          # Working directory of the build
BUILD_FILE = os.getenv("BUILD_FILE") or None                            # Passed as --build-file when set
SIMULATION_DELAY_SCALE = float(os.getenv("SIMULATION_DELAY_SCALE", "1.0"))  # 0 disables simulated delays

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
