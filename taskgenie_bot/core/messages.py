"""
User-facing texts.
"""

WELCOME = (
    "Welcome! I can help you connect your account.\n"
    "Please get a connection token from the web application and then send it to me using the command:\n"
    "/verify YOUR_TOKEN_HERE"
)

HELP = (
    "🤖 TaskGenie AI Assistant\n\n"
    "Commands:\n"
    "/start - Welcome message\n"
    "/verify <token> - Connect your account\n"
    "/help - Show this help\n\n"
    "Once connected, just chat naturally! I can:\n"
    "📝 Create and manage tasks\n"
    "🔍 Search your existing tasks\n"
    "💡 Answer questions from your knowledge\n"
    "📊 Help with planning and priorities"
)

VERIFY_USAGE = "Please provide a token after /verify. Usage: /verify YOUR_TOKEN_HERE"

VERIFY_ATTEMPT = "Attempting to verify token: {token}..."

VERIFY_SUCCESS = (
    "Token verified successfully! Your Telegram User ID is {user_id} and Chat ID is {chat_id}."
)

VERIFY_FAILED = "Verification failed: {error}"

VERIFY_SERVICE_ERROR = (
    "Sorry, there was an error communicating with the verification service. "
    "Please try again later."
)

CAPABILITIES = (
    "🤖 Great! Now I'm your AI assistant. You can:\n\n"
    "📝 Create tasks: 'Create a task to call the client tomorrow'\n"
    "🔍 Search tasks: 'What tasks do I have today?'\n"
    "💡 Ask questions: 'Help me prioritize my work'\n"
    "💾 Save info: 'Remember I prefer morning meetings'\n\n"
    "Just chat with me naturally!"
)

CONNECT_INSTRUCTIONS = (
    "👋 Hi {user_name}! I'm TaskGenie, your AI productivity assistant.\n\n"
    "To get started, please connect your account:\n"
    "1. Visit your TaskGenie settings page\n"
    "2. Generate a connection token\n"
    "3. Send me: /verify <your-token>\n\n"
    "Once connected, I can help you manage tasks, answer questions, and more!"
)

CHAT_DISABLED = (
    "✅ Your account is connected. AI chat is not enabled for this bot right now; "
    "please use the TaskGenie web app in the meantime."
)

CHAT_ERROR = (
    "❌ Sorry, I encountered an error processing your message. "
    "Please try again or rephrase your request."
)

CHAT_TIMEOUT = (
    "⏱️ Sorry, the assistant took too long to respond. Please try again in a moment."
)

CHAT_DELIVERY_FAILED = (
    "⚠️ Part of my answer could not be delivered. Please ask again if it looks incomplete."
)
