"""
Localized user-facing messages

Every message falls back to English for languages without a translation.
"""

from typing import Dict

FALLBACK_LANGUAGE = 'en'

DEFAULT_RESPONSES: Dict[str, str] = {
    'hi': 'क्षमा करें, मुझे इस प्रश्न का उत्तर नहीं मिला। कृपया हमारी हेल्पलाइन 1800-XXX-XXXX पर संपर्क करें।',
    'en': 'Sorry, I could not find an answer to your question. Please contact our helpline at 1800-XXX-XXXX.',
    'ta': 'மன்னிக்கவும், உங்கள் கேள்விக்கு பதில் கிடைக்கவில்லை. தயவுசெய்து எங்கள் உதவி எண் 1800-XXX-XXXX ஐ தொடர்பு கொள்ளவும்.',
    'te': 'క్షమించండి, మీ ప్రశ్నకు సమాధానం దొరకలేదు. దయచేసి మా హెల్ప్‌లైన్ 1800-XXX-XXXX కు సంప్రదించండి.',
    'bn': 'দুঃখিত, আমি আপনার প্রশ্নের উত্তর খুঁজে পাইনি। অনুগ্রহ করে আমাদের হেল্পলাইন 1800-XXX-XXXX এ যোগাযোগ করুন।',
    'mr': 'क्षमस्व, मला तुमच्या प्रश्नाचे उत्तर सापडले नाही. कृपया आमच्या हेल्पलाइन 1800-XXX-XXXX वर संपर्क साधा।',
    'gu': 'માફ કરશો, મને તમારા પ્રશ્નનો જવાબ મળ્યો નથી. કૃપા કરીને અમારી હેલ્પલાઇન 1800-XXX-XXXX પર સંપર્ક કરો।',
    'kn': 'ಕ್ಷಮಿಸಿ, ನಿಮ್ಮ ಪ್ರಶ್ನೆಗೆ ಉತ್ತರ ಸಿಗಲಿಲ್ಲ. ದಯವಿಟ್ಟು ನಮ್ಮ ಸಹಾಯವಾಣಿ 1800-XXX-XXXX ಗೆ ಸಂಪರ್ಕಿಸಿ।',
    'ml': 'ക്ഷമിക്കണം, നിങ്ങളുടെ ചോദ്യത്തിന് ഉത്തരം കണ്ടെത്താനായില്ല. ദയവായി ഞങ്ങളുടെ ഹെൽപ്പ്‌ലൈൻ 1800-XXX-XXXX വിളിക്കുക.',
    'pa': 'ਮਾਫ਼ ਕਰਨਾ, ਮੈਨੂੰ ਤੁਹਾਡੇ ਸਵਾਲ ਦਾ ਜਵਾਬ ਨਹੀਂ ਮਿਲਿਆ। ਕਿਰਪਾ ਕਰਕੇ ਸਾਡੀ ਹੈਲਪਲਾਈਨ 1800-XXX-XXXX ਤੇ ਸੰਪਰਕ ਕਰੋ।',
}

TRANSCRIPTION_FAILED: Dict[str, str] = {
    'hi': 'क्षमा करें, मैं आपका वॉइस संदेश समझ नहीं पाया। कृपया दोबारा भेजें या अपना प्रश्न टाइप करें।',
    'en': 'Sorry, I could not understand your voice message. Please resend it or type your question.',
    'ta': 'மன்னிக்கவும், உங்கள் குரல் செய்தியைப் புரிந்துகொள்ள முடியவில்லை. மீண்டும் அனுப்பவும் அல்லது உங்கள் கேள்வியை தட்டச்சு செய்யவும்.',
    'bn': 'দুঃখিত, আপনার ভয়েস বার্তা বুঝতে পারিনি। অনুগ্রহ করে আবার পাঠান বা আপনার প্রশ্ন টাইপ করুন।',
    'te': 'క్షమించండి, మీ వాయిస్ సందేశాన్ని అర్థం చేసుకోలేకపోయాను. దయచేసి మళ్ళీ పంపండి లేదా మీ ప్రశ్నను టైప్ చేయండి.',
    'mr': 'क्षमस्व, मला तुमचा व्हॉइस संदेश समजला नाही. कृपया पुन्हा पाठवा किंवा तुमचा प्रश्न टाइप करा.',
    'gu': 'માફ કરશો, હું તમારો વૉઇસ સંદેશ સમજી શક્યો નથી. કૃપા કરીને ફરીથી મોકલો અથવા તમારો પ્રશ્ન ટાઇપ કરો.',
    'kn': 'ಕ್ಷಮಿಸಿ, ನಿಮ್ಮ ಧ್ವನಿ ಸಂದೇಶ ಅರ್ಥವಾಗಲಿಲ್ಲ. ದಯವಿಟ್ಟು ಮತ್ತೆ ಕಳುಹಿಸಿ ಅಥವಾ ನಿಮ್ಮ ಪ್ರಶ್ನೆಯನ್ನು ಟೈಪ್ ಮಾಡಿ.',
    'ml': 'ക്ഷമിക്കണം, നിങ്ങളുടെ വോയ്‌സ് സന്ദേശം മനസ്സിലായില്ല. ദയവായി വീണ്ടും അയയ്ക്കുക അല്ലെങ്കിൽ നിങ്ങളുടെ ചോദ്യം ടൈപ്പ് ചെയ്യുക.',
    'pa': 'ਮਾਫ਼ ਕਰਨਾ, ਮੈਂ ਤੁਹਾਡਾ ਵੌਇਸ ਸੁਨੇਹਾ ਸਮਝ ਨਹੀਂ ਸਕਿਆ। ਕਿਰਪਾ ਕਰਕੇ ਦੁਬਾਰਾ ਭੇਜੋ ਜਾਂ ਆਪਣਾ ਸਵਾਲ ਟਾਈਪ ਕਰੋ।',
}

GENERIC_APOLOGY: Dict[str, str] = {
    'hi': 'क्षमा करें, कुछ गड़बड़ हो गई। कृपया थोड़ी देर बाद फिर से प्रयास करें।',
    'en': 'Sorry, something went wrong. Please try again in a little while.',
    'ta': 'மன்னிக்கவும், ஏதோ தவறு நடந்துவிட்டது. சிறிது நேரம் கழித்து மீண்டும் முயற்சிக்கவும்.',
    'te': 'క్షమించండి, ఏదో పొరపాటు జరిగింది. దయచేసి కొద్దిసేపటి తర్వాత మళ్ళీ ప్రయత్నించండి.',
    'bn': 'দুঃখিত, কিছু একটা সমস্যা হয়েছে। অনুগ্রহ করে কিছুক্ষণ পরে আবার চেষ্টা করুন।',
    'mr': 'क्षमस्व, काहीतरी चूक झाली. कृपया थोड्या वेळाने पुन्हा प्रयत्न करा.',
    'gu': 'માફ કરશો, કંઈક ખોટું થયું. કૃપા કરીને થોડી વાર પછી ફરી પ્રયાસ કરો.',
    'kn': 'ಕ್ಷಮಿಸಿ, ಏನೋ ತಪ್ಪಾಗಿದೆ. ದಯವಿಟ್ಟು ಸ್ವಲ್ಪ ಸಮಯದ ನಂತರ ಮತ್ತೆ ಪ್ರಯತ್ನಿಸಿ.',
    'ml': 'ക്ഷമിക്കണം, എന്തോ തകരാർ സംഭവിച്ചു. ദയവായി അൽപ്പസമയത്തിന് ശേഷം വീണ്ടും ശ്രമിക്കുക.',
    'pa': 'ਮਾਫ਼ ਕਰਨਾ, ਕੁਝ ਗਲਤ ਹੋ ਗਿਆ। ਕਿਰਪਾ ਕਰਕੇ ਥੋੜ੍ਹੀ ਦੇਰ ਬਾਅਦ ਦੁਬਾਰਾ ਕੋਸ਼ਿਸ਼ ਕਰੋ।',
}

REMINDER_TEMPLATES: Dict[str, str] = {
    'hi': 'अनुस्मारक: {text}',
    'en': 'Reminder: {text}',
    'ta': 'நினைவூட்டல்: {text}',
    'te': 'రిమైండర్: {text}',
    'bn': 'অনুস্মারক: {text}',
    'mr': 'स्मरणपत्र: {text}',
    'gu': 'રિમાઇન્ડર: {text}',
    'kn': 'ಜ್ಞಾಪನೆ: {text}',
    'ml': 'ഓർമ്മപ്പെടുത്തൽ: {text}',
    'pa': 'ਯਾਦ-ਪੱਤਰ: {text}',
}


def _lookup(table: Dict[str, str], language: str) -> str:
    return table.get(language) or table[FALLBACK_LANGUAGE]


def default_response(language: str) -> str:
    """Canned answer used when no strategy produced an acceptable response"""
    return _lookup(DEFAULT_RESPONSES, language)


def transcription_failed(language: str) -> str:
    """Asks the user to resend the voice note or type the question"""
    return _lookup(TRANSCRIPTION_FAILED, language)


def generic_apology(language: str) -> str:
    return _lookup(GENERIC_APOLOGY, language)


def reminder_text(language: str, text: str) -> str:
    return _lookup(REMINDER_TEMPLATES, language).format(text=text)
