# test_imports.py
import sys
print("Python path:", sys.path)

try:
    import yt_stock_ai
    print("✅ yt_stock_ai imported successfully")
    print("Module location:", yt_stock_ai.__file__)
except ImportError as e:
    print("❌ Failed to import yt_stock_ai:", e)

try:
    from yt_stock_ai.core.analysis import AnalysisOrchestrator
    print("✅ AnalysisOrchestrator imported successfully")
except ImportError as e:
    print("❌ Failed to import AnalysisOrchestrator:", e)
