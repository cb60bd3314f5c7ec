"""Facebook URLs, CSS selectors, localized phrase lists, and detection patterns.

Phrase lists come in pairs: English first, Persian as the fallback UI
language. Matching is always done on normalized text (see dom.normalize).
"""

import re

# ── URLs ─────────────────────────────────────────────────────────────────────

FACEBOOK_BASE = "https://www.facebook.com"
FACEBOOK_LOGIN_URL = f"{FACEBOOK_BASE}/login"
FACEBOOK_MESSAGES_URL = f"{FACEBOOK_BASE}/messages/t/"
FACEBOOK_SEARCH_TOP_URL = f"{FACEBOOK_BASE}/search/top"  # ?q=
FACEBOOK_SEARCH_PEOPLE_URL = f"{FACEBOOK_BASE}/search/people/"  # ?q=

# ── CSS Selectors ────────────────────────────────────────────────────────────

SELECTORS = {
    # Login page
    "login_email": "#email",
    "login_password": "#pass",
    "login_submit": "[name=login]",
    "login_form": "#email, input[name='email'], input[type='password']",

    # Only rendered for authenticated users
    "logged_in_marker": "input[type='search']",

    # Messenger
    "messenger_container": "div[role='main'], div[role='dialog']",
    "message_input_present": "div[contenteditable='true'][role='textbox'], div[aria-label='Message']",
    "result_row_text": "[role='option'] span, [role='row'] span, [role='listitem'] span",

    # Search results
    "result_card": "div[role='article'], div[role='listitem'], div[role='feed'] > div",
    "card_action": "a, button, div[role='button'], span[role='button']",

    # Generic
    "control_button": "div[role='button']",
    "editable_scan": "[contenteditable], textarea, input[type='text']",
}

# ── Locator Strategies (priority order) ──────────────────────────────────────

MESSAGE_INPUT_SELECTORS = [
    "div[contenteditable='true'][role='textbox']",
    "div[role='textbox'][contenteditable='true']",
    "div[data-lexical-editor='true'][contenteditable='true']",
    "div[aria-label='Message']",
    "div[aria-label='Write a message']",
    "div[aria-label='پیام']",
    "div[contenteditable='plaintext-only']",
    "div[contenteditable='true']",
    "textarea",
    "input[type='text']",
]

SEARCH_BOX_SELECTORS = [
    'input[aria-label="Search Messenger"]',
    'input[placeholder*="Search Messenger"]',
    'input[aria-label="جستجو در مسنجر"]',
    'input[placeholder*="Search"]',
    'input[aria-label*="Search"]',
    'input[placeholder*="جستجو"]',
    'input[type="search"]',
    'input[role="combobox"]',
]

ADD_FRIEND_SELECTORS = [
    "div[aria-label='Add friend'][role='button']",
    "div[role='button'][aria-label*='Add Friend']",
    "div[aria-label='افزودن دوست'][role='button']",
    "div[role='button']:has-text('Add friend')",
    "div[role='button']:has-text('افزودن دوست')",
]

# Fallback scan ranking: aria-label keywords that suggest the right editable region
MESSAGE_INPUT_KEYWORDS = re.compile(r"message|پیام|write", re.IGNORECASE)

# ── Captcha / Checkpoint Detection ───────────────────────────────────────────

CHECKPOINT_URL_PATTERN = re.compile(
    r"checkpoint|security|login_check|login/checkpoint|confirm", re.IGNORECASE
)

CHALLENGE_FRAME_PATTERNS = [
    re.compile(r"recaptcha", re.IGNORECASE),
    re.compile(r"hcaptcha", re.IGNORECASE),
    re.compile(r"captcha", re.IGNORECASE),
    re.compile(r"challenges\.cloudflare\.com|turnstile", re.IGNORECASE),
]

# Iframe selectors are decisive on their own; the rest also need a phrase match
CAPTCHA_SELECTORS = [
    "iframe[src*='recaptcha']",
    "iframe[src*='hcaptcha']",
    "iframe[src*='captcha']",
    "div[id*='captcha']",
    "div[class*='captcha']",
    "div[data-testid*='captcha']",
    "#cf-turnstile",
    ".cf-challenge",
    "form[action*='checkpoint']",
    "a[href*='/checkpoint']",
    "a[href*='checkpoint']",
]

CAPTCHA_PHRASES_EN = [
    "complete a challenge to verify you're a human",
    "complete a challenge",
    "verify you're a human",
    "verify you are a human",
    "solve a puzzle",
    "try audio challenge",
    "security check",
    "confirm your identity",
    "prove you are human",
    "type the characters you see",
    "enter the characters",
    "we just need to make sure there's a real human",
    "to continue, verify",
    "prove it's you",
    "we detected unusual activity",
]

CAPTCHA_PHRASES_FA = [
    "تأیید هویت",
    "تأیید کنید",
    "برای ادامه",
    "ما باید مطمئن شویم",
    "اثبات کنید که انسان هستید",
    "نوع کاراکترها را وارد کنید",
    "تکمیل آزمون",
    "تأیید شما",
    "بررسی امنیتی",
]

# ── Login Outcome ────────────────────────────────────────────────────────────

INVALID_CREDENTIALS_EN = [
    "incorrect",
    "wrong password",
    "password you entered is incorrect",
    "isn't connected to an account",
]

INVALID_CREDENTIALS_FA = [
    "اطلاعات ورود صحیح نمی‌باشد",
    "رمز عبور اشتباه",
]

# ── Messaging ────────────────────────────────────────────────────────────────

MESSAGE_ACTION_KEYWORDS_EN = ["message", "send message"]
MESSAGE_ACTION_KEYWORDS_FA = ["پیام", "پیغام"]
MESSAGE_LINK_PATTERN = re.compile(r"/messages/t/")

# ── Friend Requests ──────────────────────────────────────────────────────────

CONNECTED_PHRASES_EN = ["already friends"]
CONNECTED_PHRASES_FA = ["دوست شدید"]
# Short button labels only count on an exact match ("Add friends" must not hit)
CONNECTED_LABELS = ["friends", "دوستان"]

REQUEST_SENT_PHRASES_EN = ["cancel request", "friend request sent", "request sent"]
REQUEST_SENT_PHRASES_FA = ["لغو درخواست", "درخواست دوستی ارسال شد"]
