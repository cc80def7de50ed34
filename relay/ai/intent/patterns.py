"""
Intent and entity pattern tables.

Three kinds of data live here:
- INTENT_PATTERNS: regex families per category; each family that matches
  the lowercased text adds 1 to that category's pattern score
- SEED_EXAMPLES: exemplar utterances per category for semantic scoring
- ENTITY_PATTERNS: regex families per entity type, applied to the
  original (not lowercased) message
"""

import re
from typing import Dict, List, Pattern

from relay.ai.intent.schemas import EntityType, IntentCategory


# ---------------------------------------------------------------------------
# INTENT PATTERNS
# ---------------------------------------------------------------------------

INTENT_PATTERNS: Dict[IntentCategory, List[Pattern[str]]] = {
    IntentCategory.MEMORY_STORE: [
        re.compile(r"\b(remember|store|save|keep track of|jot down|log|record|note down)\b", re.I),
        re.compile(r"\b(remind me (?:to|about)|set a reminder)\b", re.I),
        re.compile(r"\b(my|our|the) (appointment|meeting|schedule|event|plan|task)\b", re.I),
        re.compile(r"\b(don't forget|make a note|write this down|save this)\b", re.I),
    ],
    IntentCategory.MEMORY_RETRIEVE: [
        re.compile(r"\b(what did i|do you remember|recall|tell me what|what was)\b", re.I),
        re.compile(r"\b(when is|where is|show me|find my)\b", re.I),
        re.compile(r"\b(what's my next|did i forget|remind me what)\b", re.I),
        re.compile(r"\b(what's on my|check my|look up my)\b", re.I),
    ],
    IntentCategory.COMMAND: [
        re.compile(r"\b(take a screenshot|capture|screenshot|snap|take a picture|take a photo|take a snap)\b", re.I),
        re.compile(r"\b(open|launch|run|start|go to|execute)\b", re.I),
        re.compile(r"\b(show me|display|grab)\s+(?:the\s+)?(screen|desktop|window|display)\b", re.I),
        re.compile(r"\b(take a)\s+(?:picture|photo|screenshot|snap)\s+(?:of\s+)?(?:the\s+)?(screen|desktop|display)\b", re.I),
        re.compile(r"\b(capture|grab|get)\s+(?:the\s+)?(screen|desktop|window|display)\b", re.I),
    ],
    IntentCategory.QUESTION: [
        re.compile(r"\b(what is|how is|why is|when is|where is|who is|which is)\b", re.I),
        re.compile(r"\b(tell me about|what's|how do i|why does|where can|how can i)\b", re.I),
        re.compile(r"\b(explain|help with|tutorial|example|code example)\b", re.I),
        re.compile(r"\bare you (able|capable|good|fast|better|designed|built|trained)\b", re.I),
        re.compile(r"\bdo you (support|have|offer|provide|know|understand)\b", re.I),
        re.compile(r"^\s*(what|how|why|when|where|who|which)\b", re.I),
        re.compile(r"\bhow many\b", re.I),
        re.compile(r"\bhow much\b", re.I),
        re.compile(r"\bcount.*in\b", re.I),
        re.compile(r"\bnumber of\b", re.I),
    ],
    IntentCategory.GREETING: [
        re.compile(r"^\s*(hi|hello|hey)\s*[!.?]*\s*$", re.I),
        re.compile(r"^\s*(good morning|good evening|what's up|yo)\s*[!.?]*\s*$", re.I),
        re.compile(r"^\s*how are you\b", re.I),
        re.compile(r"\b(nice to meet|greetings)\b", re.I),
    ],
}

# Tie-break order when two categories end with the same combined score
INTENT_PRIORITY: Dict[IntentCategory, int] = {
    IntentCategory.MEMORY_RETRIEVE: 4,
    IntentCategory.MEMORY_STORE: 3,
    IntentCategory.COMMAND: 2,
    IntentCategory.QUESTION: 1,
    IntentCategory.GREETING: 0,
}


# ---------------------------------------------------------------------------
# SEED EXAMPLES (semantic scoring)
# ---------------------------------------------------------------------------

SEED_EXAMPLES: Dict[IntentCategory, List[str]] = {
    IntentCategory.MEMORY_STORE: [
        "remember this", "save a reminder", "jot down this meeting", "don't forget my appointment",
        "note that I have", "store this information", "keep track of my schedule", "write down this task",
        "log this event", "make a note of this", "record this detail", "bookmark this information",
        "remember I'm meeting John at 3pm", "save that the deadline is Friday", "note my doctor's appointment",
        "remember my parking spot is B-12", "remember where I parked", "save this recipe for later",
        "add this to my calendar", "schedule this meeting", "add this to my todo list",
        "remember my preferences", "remember my allergies", "note my flight details",
    ],
    IntentCategory.MEMORY_RETRIEVE: [
        "what did I say", "remind me of my meeting", "what's on my calendar", "when is my appointment",
        "do you remember", "tell me what I stored", "find my notes about", "look up my schedule",
        "recall my tasks", "what did I save", "show me my reminders", "pull up my notes",
        "when is my next meeting", "where did I park", "what's my flight number",
        "what's on my agenda today", "show me tomorrow's schedule", "what meetings do I have",
        "what tasks do I have", "show me my todo list", "what did we discuss last time",
        "what did I ask you to remember", "did I mention anything earlier",
    ],
    IntentCategory.MEMORY_UPDATE: [
        "update this", "change this note", "modify this reminder", "edit this entry",
        "update my meeting time", "change my appointment", "change this deadline",
        "change my meeting from 2pm to 3pm", "update my phone number", "mark this as completed",
        "correct this information", "fix this entry", "reschedule the reminder",
        "change what I told you earlier", "update the details I shared",
    ],
    IntentCategory.MEMORY_DELETE: [
        "delete this", "remove this note", "erase this reminder", "clear this entry", "forget this",
        "delete my reminder about", "remove this from memory", "forget what I said about",
        "delete this appointment", "clear all my reminders", "delete completed tasks",
        "forget that event", "remove that from memory", "drop the saved note",
    ],
    IntentCategory.COMMAND: [
        "take a screenshot", "take a picture of the screen", "capture the desktop", "grab the screen",
        "screenshot this", "capture this window", "grab a screenshot", "capture the entire screen",
        "open browser", "run the script", "launch application", "execute this command", "start the program",
        "open file explorer", "launch calculator", "open settings", "launch terminal",
        "create a new folder", "delete this file", "copy these files", "move to desktop",
        "restart the computer", "lock the screen", "check system status", "clear cache",
        "connect to wifi", "check internet connection", "ping this server", "what is my ip address",
        "automate this process", "create a workflow", "set up automation", "run automated script",
    ],
    IntentCategory.QUESTION: [
        "what is the weather", "how do I cook rice", "explain this concept", "what's the oldest city",
        "why does this happen", "tell me about history", "how can I learn programming", "what does this mean",
        "how do I fix this", "what's the best way to", "how does this work",
        "what's the difference between", "which is better", "what are the pros and cons",
        "what is artificial intelligence", "define machine learning", "how do I debug this",
        "how many letters in this word", "how many Rs in strawberry", "count the vowels in this",
        "what can you do", "what are your capabilities", "do you know about",
    ],
    IntentCategory.GREETING: [
        "hello there", "good morning", "hi assistant", "nice to meet you",
        "greetings", "good evening", "howdy", "hi there", "hello", "hey",
        "good afternoon", "good day", "long time no see", "good to see you",
        "how do you do", "hey buddy", "hi friend", "bonjour", "hola",
    ],
}


# ---------------------------------------------------------------------------
# ENTITY PATTERNS
# ---------------------------------------------------------------------------

_MONTHS = r"(?:january|february|march|april|may|june|july|august|september|october|november|december)"
_WEEKDAYS = r"(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)"
_STREET = r"(?:Street|St\.?|Avenue|Ave\.?|Road|Rd\.?|Boulevard|Blvd\.?|Drive|Lane|Ln\.?|Plaza|Court|Ct\.?)"

ENTITY_PATTERNS: Dict[EntityType, Pattern[str]] = {
    EntityType.DATETIME: re.compile(
        r"\b(?:"
        r"\d{1,2}:\d{2}(?::\d{2})?(?:\s*(?:am|pm))?"
        r"|\d{1,2}\s*(?:am|pm)"
        r"|tomorrow|today|yesterday|tonight|this\s+(?:morning|afternoon|evening|night)"
        rf"|(?:next|last|this)\s+(?:week|month|year|weekend|{_WEEKDAYS})"
        r"|in\s+\d+\s+(?:days?|hours?|minutes?|weeks?|months?|years?)"
        r"|\d+\s+(?:days?|hours?|minutes?|weeks?|months?|years?)\s+(?:ago|from\s+now)"
        r"|(?:mon|tue|wed|thu|fri|sat|sun)(?:day)?s?"
        r"|\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}"
        r"|\d{4}-\d{2}-\d{2}"
        rf"|{_MONTHS}\s+\d{{1,2}}(?:,\s*\d{{4}})?"
        rf"|\d{{1,2}}(?:st|nd|rd|th)\s+(?:of\s+)?{_MONTHS}"
        r"|(?:at\s+)?(?:noon|midnight|dawn|dusk|sunrise|sunset)"
        r"|(?:early|late)\s+(?:morning|afternoon|evening)"
        r"|(?:end|beginning|start)\s+of\s+(?:week|month|year)"
        r")\b",
        re.I,
    ),
    EntityType.PERSON: re.compile(
        r"\b(?:"
        r"(?:Dr\.?|Mr\.?|Mrs\.?|Ms\.?|Miss|Prof\.?|Professor|Sir|Madam|Captain|Colonel|Major|General)"
        r"\s*[A-Z][a-z]+(?:\s+[A-Z][a-z']+)*"
        r"|[A-Z][a-z']+(?:\s+[A-Z][a-z']+)+"
        r"|(?:John|Jane|Michael|Sarah|David|Lisa|Robert|Mary|James|Jennifer|William|Elizabeth|Emma|Olivia)"
        r")\b"
    ),
    # Proper names stay case-sensitive; common place nouns match any case
    EntityType.LOCATION: re.compile(
        r"\b(?:"
        r"(?i:office|home|downtown|uptown|midtown|clinic|hospital|school|university|college|library|cafe"
        r"|coffee\s+shop|restaurant|airport|train\s+station|station|bus\s+stop|park|city|town|village|building"
        r"|room\s+\d+|floor\s+\d+|(?:north|south|east|west)\s+(?:side|end|part))"
        rf"|\d+\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+{_STREET}"
        rf"|[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+{_STREET}"
        r"|[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+(?:Center|Centre|Mall|Market|Square|Park|Gardens?|Museum|Theater|Theatre|Stadium|Arena)"
        r")\b"
    ),
    EntityType.EVENT: re.compile(
        r"\b(?:appointment|meeting|phone\s+call|video\s+call|call|interview|lunch|dinner|breakfast|brunch"
        r"|conference|webinar|seminar|workshop|training|standup|stand-up|demo|presentation|pitch"
        r"|check-in|review|follow-up|party|birthday|anniversary|wedding|graduation|class|lesson"
        r"|session|consultation|kickoff|launch|release|deployment|milestone|deadline)\b",
        re.I,
    ),
    EntityType.CONTACT: re.compile(
        r"(?:[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"
        r"|https?://\S+|www\.\S+"
        r"|(?:\+?1[\s\-.]?)?\(?\d{3}\)?[\s\-.]?\d{3}[\s\-.]?\d{4}"
        r"|(?<![\w.])@[a-zA-Z0-9_]+)"
    ),
    EntityType.CAPABILITY: re.compile(
        r"\b(?:semantic\s+search|search|memory|memorize|store|save|remember|recall|retrieve|screenshot"
        r"|capture|screen|desktop|display|monitor|window|recognize|detect|identify|track|analyze"
        r"|code|coding|programming|javascript|typescript|python|java|rust|swift|react|vue|django|flask"
        r"|automation|workflow|agent|chatbot|assistant|backup|restore|sync)\b",
        re.I,
    ),
    EntityType.TECHNOLOGY: re.compile(
        r"\b(?:AI|artificial\s+intelligence|LLM|large\s+language\s+model|GPT|BERT|transformer"
        r"|neural\s+network|machine\s+learning|deep\s+learning|NLP|embedding|vector|RAG"
        r"|postgresql|postgres|mysql|mongodb|redis|elasticsearch|sql|json|yaml|csv|API|REST|GraphQL"
        r"|WebSocket|CLI|OCR|computer\s+vision|AWS|Azure|GCP|Docker|Kubernetes)\b",
        re.I,
    ),
    EntityType.ACTION: re.compile(
        r"\b(?:create|generate|build|make|write|edit|update|modify|change|delete|remove|erase|clear"
        r"|list|show|display|explain|describe|summarize|help|analyze|review|plan|schedule|organize"
        r"|find|search|lookup|remind|remember|store|save|send|share|notify|run|execute|launch|start"
        r"|open|close|stop|finish)\b",
        re.I,
    ),
}

# Matches containing these are artifacts of LLM analysis text, not user content
ENTITY_NOISE = ("Intent", "Type", "Key", "\n")


# ---------------------------------------------------------------------------
# BOOLEAN FLAG PATTERNS
# ---------------------------------------------------------------------------

MEMORY_ACCESS_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\b(remember|store|save|keep track|don't forget|note|log|record)\b"),
    re.compile(r"\b(remind me|recall|what did i|do you remember)\b"),
    re.compile(r"\b(my (appointment|meeting|schedule|task|note))\b"),
]

EXTERNAL_DATA_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\b(weather|temperature|forecast|climate)\b"),
    re.compile(r"\b(news|current events|headlines|breaking)\b"),
    re.compile(r"\b(search|lookup|find online|google|web)\b"),
    re.compile(r"\b(stock price|market|exchange rate)\b"),
    re.compile(r"\b(what time|current time|timezone)\b"),
]

SCREENSHOT_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\b(screenshot|screen shot|capture|snap)\b"),
    re.compile(r"\b(show me (the|this|what's on))\b"),
    re.compile(r"\b(take a (picture|photo) of)\b"),
    re.compile(r"\b(grab (the|this) (screen|display))\b"),
]


# ---------------------------------------------------------------------------
# SUGGESTED RESPONSES
# ---------------------------------------------------------------------------

FALLBACK_RESPONSES: Dict[IntentCategory, List[str]] = {
    IntentCategory.MEMORY_STORE: [
        "I'll remember that for you.",
        "Got it, I've stored that information.",
        "I'll keep that in mind.",
    ],
    IntentCategory.MEMORY_RETRIEVE: [
        "Let me check what I have stored about that.",
        "I'll look up that information for you.",
        "Let me recall what you told me about that.",
    ],
    IntentCategory.MEMORY_UPDATE: [
        "I'll update that information for you.",
        "I'll modify what I have stored.",
        "I'll change that in my records.",
    ],
    IntentCategory.MEMORY_DELETE: [
        "I'll remove that from my memory.",
        "I'll forget that information.",
        "I'll delete that record.",
    ],
    IntentCategory.COMMAND: [
        "I'll take care of that for you.",
        "I'll execute that command.",
        "I'll handle that action.",
    ],
    IntentCategory.GREETING: [
        "Hello! How can I help you today?",
        "Hi there! What can I assist you with?",
        "Good to see you! How may I help?",
    ],
    IntentCategory.QUESTION: [
        "I can help you find that information.",
        "Let me look that up for you.",
        "I'll help you with that question.",
    ],
}

FALLBACK_SUGGESTED_RESPONSE = (
    "I apologize, but I had trouble understanding your request. Could you please rephrase it?"
)
