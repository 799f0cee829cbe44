"""VFX.sh Admin Core API"""
