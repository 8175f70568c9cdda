"""Scoring models (category scoring, penalty modifiers, trend, aggregate engine).

Layer 2: category_scoring -- weighted category scores and risk bands
Layer 3: financial_health -- composite score, confidence and report assembly
         modifiers        -- bounded penalty rules
         trend            -- score trend over the persisted history
"""
