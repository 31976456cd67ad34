# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/messages.py
"""
User-facing reply texts.
"""
from typing import Optional

STILL_PROCESSING = "I'm still processing your previous request. Please wait."
TOO_MANY_REQUESTS = "Too many requests. Please slow down."
WELCOME = "Welcome! Your credits have been initialized."
START_FAILED = "Error initializing credits."
INSUFFICIENT_CREDITS = "Insufficient credits to process the query."
PROCESSING_ERROR = "Sorry, I encountered an error."
JOB_TIMED_OUT = "Your request timed out. Please try again."


def out_of_credits(contact_url: Optional[str] = None) -> str:
    if contact_url:
        return f"You've run out of credits. Please join our channel to contact for a refill: {contact_url}"
    return "You've run out of credits. Please contact us for a refill."
