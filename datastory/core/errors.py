"""
Error taxonomy, message catalogs and utilities for user-friendly error handling.
"""
from typing import Dict, List, Optional, Tuple


# Error codes
class ErrorCodes:
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    FILE_EMPTY = "FILE_EMPTY"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    PARSE_ERROR = "PARSE_ERROR"
    EMPTY_DATASET = "EMPTY_DATASET"
    NO_COLUMNS = "NO_COLUMNS"
    NO_SHEETS = "NO_SHEETS"
    EMPTY_SHEET = "EMPTY_SHEET"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    INSIGHT_GENERATION_FAILED = "INSIGHT_GENERATION_FAILED"
    STORY_GENERATION_FAILED = "STORY_GENERATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# User-friendly error messages, per locale
ERROR_MESSAGES: Dict[str, Dict[str, Dict[str, str]]] = {
    "en": {
        ErrorCodes.FILE_TOO_LARGE: {
            "message": "Your file is too large",
            "detail": "The uploaded file exceeds the size limit for data stories.",
            "suggestion": "💡 Export only the columns and rows you need, or split the file into smaller parts."
        },
        ErrorCodes.FILE_EMPTY: {
            "message": "Your file looks empty",
            "detail": "We couldn't find any data rows in the uploaded file.",
            "suggestion": "💡 Make sure the file has a header row followed by at least one row of data."
        },
        ErrorCodes.INVALID_FILE_TYPE: {
            "message": "We need a CSV, Excel or JSON file",
            "detail": "Only delimited text (.csv), spreadsheets (.xlsx) and JSON records (.json) are supported.",
            "suggestion": "💡 Most tools have an 'Export as CSV' option in the File menu."
        },
        ErrorCodes.PARSE_ERROR: {
            "message": "We're having trouble reading your file",
            "detail": "The file could not be decoded. It may be corrupted or use an unexpected format or encoding.",
            "suggestion": "💡 Save the file again as UTF-8 CSV, a fresh .xlsx workbook, or valid JSON."
        },
        ErrorCodes.EMPTY_DATASET: {
            "message": "There is no data to analyze",
            "detail": "The file was read but produced no rows.",
            "suggestion": "💡 Check that your data starts right below the header row."
        },
        ErrorCodes.NO_COLUMNS: {
            "message": "We couldn't find any columns",
            "detail": "The first row of the data has no column names.",
            "suggestion": "💡 Put column names in the first row of the file."
        },
        ErrorCodes.NO_SHEETS: {
            "message": "The workbook has no sheets",
            "detail": "The spreadsheet doesn't contain any worksheet we can read.",
            "suggestion": "💡 Add your data to the first sheet and upload again."
        },
        ErrorCodes.EMPTY_SHEET: {
            "message": "The first sheet is empty",
            "detail": "Only the first sheet of a workbook is read, and it has no data rows.",
            "suggestion": "💡 Move the data you want analyzed to the first sheet."
        },
        ErrorCodes.PROVIDER_ERROR: {
            "message": "The AI service is unavailable",
            "detail": "The generative AI provider could not complete the request.",
            "suggestion": "💡 Try again in a moment."
        },
        ErrorCodes.INSIGHT_GENERATION_FAILED: {
            "message": "We couldn't generate insights",
            "detail": "The AI analysis of your data failed.",
            "suggestion": "💡 Your upload is safe. Run the analysis again in a moment."
        },
        ErrorCodes.STORY_GENERATION_FAILED: {
            "message": "We couldn't write the story",
            "detail": "Both the primary and the fallback AI providers failed to produce a draft.",
            "suggestion": "💡 Your analysis is safe. Try generating the story again in a moment."
        },
        ErrorCodes.NOT_FOUND: {
            "message": "We couldn't find that record",
            "detail": "The requested item does not exist.",
            "suggestion": "💡 Check the link or start again from the upload."
        },
        ErrorCodes.INVALID_STATE: {
            "message": "This step isn't ready yet",
            "detail": "The previous step has not completed successfully.",
            "suggestion": "💡 Finish the previous step, then try again."
        },
        ErrorCodes.RATE_LIMIT_EXCEEDED: {
            "message": "Slow down a bit",
            "detail": "You're sending requests faster than we allow.",
            "suggestion": "💡 Try again in about a minute."
        },
        ErrorCodes.TIMEOUT: {
            "message": "This is taking longer than expected",
            "detail": "The request did not finish in time.",
            "suggestion": "💡 Try a smaller file, or try again in a moment."
        },
        ErrorCodes.UNKNOWN_ERROR: {
            "message": "Something unexpected happened",
            "detail": "We encountered an issue we weren't expecting.",
            "suggestion": "💡 Give it another try in a moment."
        },
    },
    "ar": {
        ErrorCodes.FILE_TOO_LARGE: {
            "message": "حجم الملف كبير جداً",
            "detail": "يتجاوز الملف المرفوع الحد المسموح به.",
            "suggestion": "💡 صدّر الأعمدة والصفوف التي تحتاجها فقط، أو قسّم الملف إلى أجزاء أصغر."
        },
        ErrorCodes.FILE_EMPTY: {
            "message": "يبدو أن الملف فارغ",
            "detail": "لم نعثر على أي صفوف بيانات في الملف المرفوع.",
            "suggestion": "💡 تأكد من وجود صف عناوين يليه صف بيانات واحد على الأقل."
        },
        ErrorCodes.INVALID_FILE_TYPE: {
            "message": "نوع الملف غير مدعوم",
            "detail": "يرجى رفع ملف CSV أو Excel أو JSON فقط.",
            "suggestion": "💡 معظم البرامج توفر خيار التصدير بصيغة CSV من قائمة الملف."
        },
        ErrorCodes.PARSE_ERROR: {
            "message": "تعذرت قراءة الملف",
            "detail": "لم نتمكن من فك ترميز الملف، فقد يكون تالفاً أو بصيغة غير متوقعة.",
            "suggestion": "💡 احفظ الملف مجدداً بصيغة CSV بترميز UTF-8 أو بصيغة JSON صالحة."
        },
        ErrorCodes.EMPTY_DATASET: {
            "message": "لا توجد بيانات للتحليل",
            "detail": "تمت قراءة الملف لكنه لم يحتوِ على أي صفوف.",
            "suggestion": "💡 تأكد من أن البيانات تبدأ مباشرة تحت صف العناوين."
        },
        ErrorCodes.NO_COLUMNS: {
            "message": "لم نعثر على أعمدة",
            "detail": "الصف الأول من البيانات لا يحتوي على أسماء أعمدة.",
            "suggestion": "💡 ضع أسماء الأعمدة في الصف الأول من الملف."
        },
        ErrorCodes.NO_SHEETS: {
            "message": "المصنف لا يحتوي على أوراق",
            "detail": "لا يحتوي ملف الجدول على أي ورقة عمل قابلة للقراءة.",
            "suggestion": "💡 أضف بياناتك إلى الورقة الأولى ثم أعد الرفع."
        },
        ErrorCodes.EMPTY_SHEET: {
            "message": "الورقة الأولى فارغة",
            "detail": "تتم قراءة الورقة الأولى فقط من المصنف، وهي لا تحتوي على بيانات.",
            "suggestion": "💡 انقل البيانات المطلوب تحليلها إلى الورقة الأولى."
        },
        ErrorCodes.PROVIDER_ERROR: {
            "message": "خدمة الذكاء الاصطناعي غير متاحة",
            "detail": "تعذر على مزود الذكاء الاصطناعي إكمال الطلب.",
            "suggestion": "💡 حاول مرة أخرى بعد قليل."
        },
        ErrorCodes.INSIGHT_GENERATION_FAILED: {
            "message": "فشل تحليل البيانات",
            "detail": "تعذر توليد الرؤى من بياناتك.",
            "suggestion": "💡 ملفك محفوظ. أعد تشغيل التحليل بعد قليل."
        },
        ErrorCodes.STORY_GENERATION_FAILED: {
            "message": "فشل توليد القصة",
            "detail": "فشل المزود الأساسي والمزود الاحتياطي في إنتاج مسودة.",
            "suggestion": "💡 تحليلك محفوظ. حاول توليد القصة مرة أخرى بعد قليل."
        },
        ErrorCodes.NOT_FOUND: {
            "message": "العنصر غير موجود",
            "detail": "العنصر المطلوب غير موجود.",
            "suggestion": "💡 تحقق من الرابط أو ابدأ من جديد برفع الملف."
        },
        ErrorCodes.INVALID_STATE: {
            "message": "هذه الخطوة غير جاهزة بعد",
            "detail": "لم تكتمل الخطوة السابقة بنجاح.",
            "suggestion": "💡 أكمل الخطوة السابقة ثم حاول مجدداً."
        },
        ErrorCodes.RATE_LIMIT_EXCEEDED: {
            "message": "تمهّل قليلاً",
            "detail": "أرسلت طلبات أكثر من المسموح به.",
            "suggestion": "💡 حاول مرة أخرى بعد دقيقة تقريباً."
        },
        ErrorCodes.TIMEOUT: {
            "message": "استغرق الطلب وقتاً أطول من المتوقع",
            "detail": "لم يكتمل الطلب في الوقت المحدد.",
            "suggestion": "💡 جرّب ملفاً أصغر أو حاول مرة أخرى بعد قليل."
        },
        ErrorCodes.UNKNOWN_ERROR: {
            "message": "حدث خطأ غير متوقع",
            "detail": "واجهنا مشكلة لم نكن نتوقعها.",
            "suggestion": "💡 حاول مرة أخرى بعد قليل."
        },
    },
}


def get_error_response(
    error_code: str,
    additional_detail: Optional[str] = None,
    locale: str = "en"
) -> Dict[str, str]:
    """
    Get user-friendly error response for an error code.

    Args:
        error_code: One of the ErrorCodes constants
        additional_detail: Optional additional detail to append
        locale: Message catalog to use ('en' or 'ar'); unknown locales fall back to English

    Returns:
        Dictionary with code, message, detail, and suggestion
    """
    catalog = ERROR_MESSAGES.get(locale, ERROR_MESSAGES["en"])
    error_info = catalog.get(error_code, catalog[ErrorCodes.UNKNOWN_ERROR])

    response = {
        "code": error_code,
        "message": error_info["message"],
        "detail": error_info["detail"],
        "suggestion": error_info["suggestion"]
    }

    if additional_detail:
        response["detail"] = f"{response['detail']} {additional_detail}"

    return response


class DataStoryError(Exception):
    """Base class for every failure surfaced by the data story pipeline."""

    code = ErrorCodes.UNKNOWN_ERROR
    status_code = 500

    def to_response(self, locale: str = "en") -> Dict[str, str]:
        return get_error_response(self.code, str(self) or None, locale)


# Parse / validation failures: malformed or empty source data, never retried

class DataValidationError(DataStoryError):
    code = ErrorCodes.PARSE_ERROR
    status_code = 400


class EmptyInputError(DataValidationError):
    code = ErrorCodes.FILE_EMPTY


class EmptyDatasetError(DataValidationError):
    code = ErrorCodes.EMPTY_DATASET


class NoColumnsError(EmptyDatasetError):
    code = ErrorCodes.NO_COLUMNS


class NoSheetsError(DataValidationError):
    code = ErrorCodes.NO_SHEETS


class EmptySheetError(DataValidationError):
    code = ErrorCodes.EMPTY_SHEET


class InvalidSyntaxError(DataValidationError):
    code = ErrorCodes.PARSE_ERROR


class UnsupportedFormatError(DataValidationError):
    code = ErrorCodes.INVALID_FILE_TYPE


class FileTooLargeError(DataValidationError):
    code = ErrorCodes.FILE_TOO_LARGE
    status_code = 413


# Generation failures

class ProviderError(DataStoryError):
    """A single generative provider call failed or is not configured."""

    code = ErrorCodes.PROVIDER_ERROR
    status_code = 502

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class GenerationAttemptsExhausted(DataStoryError):
    """Every attempt of a provider chain failed."""

    code = ErrorCodes.PROVIDER_ERROR
    status_code = 502

    def __init__(self, failures: List[Tuple[str, Exception]]):
        self.failures = failures
        summary = "; ".join(f"{name}: {exc}" for name, exc in failures)
        super().__init__(f"All {len(failures)} generation attempt(s) failed ({summary})")

    @property
    def primary_error(self) -> Exception:
        return self.failures[0][1]


class InsightGenerationError(DataStoryError):
    code = ErrorCodes.INSIGHT_GENERATION_FAILED
    status_code = 502


class StoryGenerationError(DataStoryError):
    code = ErrorCodes.STORY_GENERATION_FAILED
    status_code = 502


# Persistence / workflow failures

class RecordNotFoundError(DataStoryError):
    code = ErrorCodes.NOT_FOUND
    status_code = 404


class InvalidStateError(DataStoryError):
    code = ErrorCodes.INVALID_STATE
    status_code = 409
