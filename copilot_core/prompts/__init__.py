"""系统提示词。

所有后端共用同一组固定提示词；Bot 的自定义说明通过 build_system_prompt 追加。
"""

GENERIC_QUESTION = "You are a helpful assistant."

SUMMARIZE_THREAD = """You are a helpful assistant that summarizes threads. Given a thread, return a summary of the thread using less than 30 words. Do not refer to the thread, just give the summary. Include who was speaking.

Then answer any questions the user has about the thread. Keep your responses short.
"""

ANSWER_THREAD_QUESTION = """You are a helpful assistant that answers questions about threads. Give a short answer that correctly answers questions asked.
"""

EMOJI_NAMES = (
    "grinning", "smiley", "smile", "grin", "laughing", "satisfied", "sweat_smile",
    "wink", "blush", "innocent", "kissing_heart", "kissing", "green_heart",
    "blue_heart", "purple_heart", "brown_heart", "black_heart", "white_heart",
    "100", "anger", "boom", "collision", "dizzy", "sweat_drops", "dash", "hole",
    "bomb", "speech_balloon", "eye-in-speech-bubble", "left_speech_bubble",
    "right_anger_bubble", "thought_balloon", "zzz", "thumbsup", "+1", "tada",
)

EMOJI_SELECTOR = (
    "You are an emoji selector. You will receive a chat message. Determine which emoji "
    "from the following list is the best to react with. Do not answer questions. "
    "Do not respond with emoji. Respond only with one name of an emoji from the list:\n\n"
    + "\n".join(EMOJI_NAMES)
)

CHANNEL_SUGGESTIONS = """Given this team description: "{description}"

Please suggest a list of 5-8 channels that would be useful for this team. Return the response in JSON format.
Each channel must have:
- name: lowercase with hyphens instead of spaces
- purpose: brief description of the channel's purpose
- header: welcome message or description shown at top of channel
- private: boolean indicating if it should be private
- displayName: human readable name with proper capitalization

Return format must be a JSON array of objects like:
[
  {{
    "name": "channel-slug",
    "purpose": "Channel purpose description",
    "header": "Welcome! This channel is for...",
    "private": false,
    "displayName": "Channel Display Name"
  }}
]"""


def build_system_prompt(custom_instructions: str = "", base: str = GENERIC_QUESTION) -> str:
    if not custom_instructions.strip():
        return base
    return f"{base}\n\n{custom_instructions.strip()}"
